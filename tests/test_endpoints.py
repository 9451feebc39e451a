"""
Tests for the HTTP endpoints.

These tests verify every router through the FastAPI TestClient:
- Success responses are wrapped in the data envelope
- Unknown ids return NOT_FOUND naming the field
- Permission failures return FORBIDDEN
- Invalid bodies and query parameters return VALIDATION_ERROR
"""

import pytest


@pytest.fixture
def people(test_client, make_user, make_post):
    """An owner with one post and a fan."""
    owner = make_user('owner')
    fan = make_user('fan')
    post_id = make_post(owner, content_type='entertainment', hashtags=['comedy'])
    return {'owner': owner, 'fan': fan, 'post_id': post_id}


class TestFeedEndpoints:

    def test_personalized_feed(self, test_client, people):
        response = test_client.get(f"/feed/personalized/{people['fan']}?limit=5")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["count"] == 1
        assert body["data"]["posts"][0]["id"] == people['post_id']
        assert body["meta"]["total"] == 1
        assert set(body["data"]["context"]) == {"mood", "time_preference", "passions", "following_count"}

    def test_personalized_feed_unknown_user(self, test_client):
        response = test_client.get("/feed/personalized/9999")

        assert response.status_code == 404
        assert response.json()["error"] == {
            "code": "NOT_FOUND", "message": "User 9999 not found", "field": "user_id"
        }

    def test_limit_above_maximum(self, test_client, people):
        response = test_client.get(f"/feed/personalized/{people['fan']}?limit=101")

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "limit"

    def test_discover_and_trending(self, test_client, people):
        discover = test_client.get(f"/feed/discover/{people['fan']}")
        trending = test_client.get("/feed/trending")

        assert discover.status_code == 200
        assert discover.json()["data"]["posts"][0]["engagement_score"] == 0
        assert trending.status_code == 200
        assert trending.json()["data"]["timeframe"] == "24 hours"

    def test_track_interaction(self, test_client, people):
        response = test_client.post("/feed/track-interaction", json={
            "user_id": people['fan'], "post_id": people['post_id'],
            "interaction_type": "view", "duration_seconds": 3.5,
        })

        assert response.status_code == 200
        assert response.json()["data"]["interaction_type"] == "view"

    def test_track_interaction_invalid_type(self, test_client, people):
        response = test_client.post("/feed/track-interaction", json={
            "user_id": people['fan'], "post_id": people['post_id'], "interaction_type": "stare",
        })

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "interaction_type"


class TestFanEndpoints:

    def test_log_interaction_and_status(self, test_client, people):
        response = test_client.post(f"/fans/{people['fan']}/interaction", json={
            "owner_user_id": people['owner'], "interaction_type": "comment",
        })

        assert response.status_code == 200
        assert response.json()["data"]["total_interactions"] == 1

        status = test_client.get(f"/fans/{people['fan']}/status/{people['owner']}").json()["data"]
        assert status["tier"] == "new"
        assert status["comment_count"] == 1

    def test_self_fan_rejected(self, test_client, people):
        response = test_client.post(f"/fans/{people['owner']}/interaction", json={
            "owner_user_id": people['owner'], "interaction_type": "view",
        })

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "owner_id"

    def test_leaderboard_badges_tiers(self, test_client, people):
        test_client.post(f"/fans/{people['fan']}/interaction", json={
            "owner_user_id": people['owner'], "interaction_type": "share",
        })

        leaderboard = test_client.get(f"/fans/{people['owner']}/leaderboard").json()
        badges = test_client.get(f"/fans/{people['fan']}/badges").json()
        tiers = test_client.get(f"/fans/{people['owner']}/tiers").json()

        assert leaderboard["data"][0]["fan_id"] == people['fan']
        assert leaderboard["meta"]["total"] == 1
        assert badges["data"][0]["owner_id"] == people['owner']
        assert tiers["data"]["total_fans"] == 1


class TestReactionEndpoints:

    def test_add_and_read(self, test_client, people):
        response = test_client.post("/reactions/add", json={
            "user_id": people['fan'], "post_id": people['post_id'], "reaction_type": "laugh",
        })

        assert response.status_code == 200
        assert response.json()["data"]["action"] == "added"

        counts = test_client.get(f"/reactions/post/{people['post_id']}").json()["data"]
        mine = test_client.get(f"/reactions/user/{people['fan']}/post/{people['post_id']}").json()["data"]
        stats = test_client.get(f"/reactions/stats/{people['fan']}").json()["data"]

        assert counts["laugh"] == 1
        assert mine == {"has_reacted": True, "reaction_type": "laugh"}
        assert stats["personality_type"] == "Fun-Seeker"

    def test_blocked_reaction(self, test_client, people, seeded_db):
        seeded_db.execute(
            "INSERT INTO post_reaction_rules (post_id, blocked_reactions) VALUES (?, ?)",
            (people['post_id'], '["fire"]')
        )
        seeded_db.commit()

        response = test_client.post("/reactions/add", json={
            "user_id": people['fan'], "post_id": people['post_id'], "reaction_type": "fire",
        })

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_reaction_type(self, test_client, people):
        response = test_client.post("/reactions/add", json={
            "user_id": people['fan'], "post_id": people['post_id'], "reaction_type": "like",
        })

        assert response.status_code == 422


class TestCommentEndpoints:

    def _create(self, test_client, people, content="nice clip"):
        response = test_client.post("/comments/create", json={
            "user_id": people['fan'], "post_id": people['post_id'], "content": content,
        })
        assert response.status_code == 200
        return response.json()["data"]

    def test_create_and_list(self, test_client, people):
        created = self._create(test_client, people)

        assert created["priority_score"] == 10.0

        listing = test_client.get(f"/comments/post/{people['post_id']}?sort=recent").json()
        assert listing["data"]["comments"][0]["id"] == created["comment"]["id"]
        assert listing["meta"]["total"] == 1

        filtered = test_client.get(f"/comments/post/{people['post_id']}/filtered?filter=premium").json()
        assert filtered["data"]["count"] == 0

    def test_invalid_sort(self, test_client, people):
        response = test_client.get(f"/comments/post/{people['post_id']}?sort=loudest")

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "sort"

    def test_empty_content(self, test_client, people):
        response = test_client.post("/comments/create", json={
            "user_id": people['fan'], "post_id": people['post_id'], "content": "",
        })

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "content"

    def test_update_and_delete_by_author(self, test_client, people):
        comment_id = self._create(test_client, people)["comment"]["id"]

        updated = test_client.put(f"/comments/{comment_id}", json={
            "user_id": people['fan'], "content": "edited",
        })
        deleted = test_client.request("DELETE", f"/comments/{comment_id}", json={"user_id": people['fan']})

        assert updated.json()["data"]["content"] == "edited"
        assert deleted.json()["data"] == {"id": comment_id, "deleted": True}

    def test_update_by_other_user_forbidden(self, test_client, people):
        comment_id = self._create(test_client, people)["comment"]["id"]

        response = test_client.put(f"/comments/{comment_id}", json={
            "user_id": people['owner'], "content": "not yours",
        })

        assert response.status_code == 403
        assert response.json()["error"]["field"] == "user_id"

    def test_delete_unknown_comment(self, test_client, people):
        response = test_client.request("DELETE", "/comments/4040", json={"user_id": people['fan']})

        assert response.status_code == 404
        assert response.json()["error"]["field"] == "comment_id"


class TestSubscriptionEndpoints:

    def test_plans(self, test_client):
        paid = test_client.get("/subscriptions/plans").json()
        everything = test_client.get("/subscriptions/plans?include_free=true").json()

        assert [plan["plan_type"] for plan in paid["data"]] == ["superfan", "superfan_plus"]
        assert everything["meta"]["total"] == 3

    def test_subscribe_and_read(self, test_client, people):
        response = test_client.post("/subscriptions/subscribe", json={
            "user_id": people['fan'], "plan_type": "superfan_plus",
        })

        assert response.status_code == 200
        subscription = test_client.get(f"/subscriptions/user/{people['fan']}").json()["data"]
        assert subscription["plan"]["plan_type"] == "superfan_plus"

    def test_unknown_plan(self, test_client, people):
        response = test_client.post("/subscriptions/subscribe", json={
            "user_id": people['fan'], "plan_type": "platinum",
        })

        assert response.status_code == 404
        assert response.json()["error"]["field"] == "plan_type"


class TestChatEndpoints:

    def test_create_get_and_join(self, test_client, people):
        created = test_client.post("/chat/fan-groups", json={
            "owner_user_id": people['owner'], "min_tier_required": "new",
        })
        assert created.status_code == 200
        group_id = created.json()["data"]["id"]

        test_client.post(f"/fans/{people['fan']}/interaction", json={
            "owner_user_id": people['owner'], "interaction_type": "view",
        })
        joined = test_client.post(f"/chat/fan-groups/{group_id}/join", json={"user_id": people['fan']})
        group = test_client.get(f"/chat/fan-groups/{group_id}").json()["data"]

        assert joined.json()["data"]["role"] == "fan"
        assert group["member_count"] == 2
        assert group["name"] == "New Fan Group"

    def test_join_without_tier_forbidden(self, test_client, people):
        group_id = test_client.post("/chat/fan-groups", json={
            "owner_user_id": people['owner'], "min_tier_required": "loyal",
        }).json()["data"]["id"]

        response = test_client.post(f"/chat/fan-groups/{group_id}/join", json={"user_id": people['fan']})

        assert response.status_code == 403

    def test_unknown_group(self, test_client):
        response = test_client.get("/chat/fan-groups/555")

        assert response.status_code == 404
        assert response.json()["error"]["field"] == "group_id"
