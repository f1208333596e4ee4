import random

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from app.services.gallery import GALLERY_TIERS, tier_for_code
from app.services.leaderboard import FEED_GALLERY, FEED_GALLERY_FEATURED
from app.services.reward import PayoutJob


def _submit(client: TestClient, signer: str, nft_id: str, code: str = "2") -> dict:
    response = client.post("/gallery", json={"signer": signer, "nftId": nft_id, "code": code})
    assert response.status_code == status.HTTP_200_OK
    return response.json()


class TestGalleryTiers:
    @pytest.mark.parametrize(
        "code, tier",
        [("1abc", "1"), ("2", "2"), ("3x", "3"), ("9", "2"), ("", "2")],
    )
    def test_tier_for_code(self, code, tier):
        assert tier_for_code(code) == GALLERY_TIERS[tier]

    def test_featured_tier_feeds(self):
        assert GALLERY_TIERS["1"].feeds == (FEED_GALLERY, FEED_GALLERY_FEATURED)
        assert GALLERY_TIERS["3"].feeds == ()


class TestGallerySubmitAPI:
    """POST /gallery"""

    def test_first_submission_rewarded(self, client: TestClient, services):
        data = _submit(client, "addr_a", "nft-1", "1")

        assert data["code"] == 0
        assert data["result"]["rewarded"] is True
        assert 19 <= float(data["result"]["amount"]) < 20 + 1e-6
        jobs = [PayoutJob.from_json(raw) for raw in services.queue.pending()]
        assert len(jobs) == 1
        assert jobs[0].address == "addr_a"
        assert jobs[0].program == "gallery"
        assert jobs[0].amount == data["result"]["amount"]

    def test_second_submission_not_rewarded(self, client: TestClient, services):
        _submit(client, "addr_a", "nft-1")
        data = _submit(client, "addr_a", "nft-2")

        assert data["result"] == {"rewarded": False, "amount": ""}
        assert len(services.queue.pending()) == 1

    def test_mint_and_gallery_rewards_independent(self, client: TestClient, services):
        services.rewards.claim("addr_a", "mint", "2")
        assert _submit(client, "addr_a", "nft-1")["result"]["rewarded"] is True
        assert len(services.queue.pending()) == 2

    def test_missing_signer(self, client: TestClient):
        response = client.post("/gallery", json={"signer": "", "nftId": "nft-1"})
        assert response.json()["code"] == 2

    def test_tier_amount_ranges(self, services):
        services.gallery.rng = random.Random(7)
        for i, (code, (low, high)) in enumerate([("1", (19, 20)), ("2", (17, 19)), ("3", (15, 17))]):
            result = services.gallery.submit(f"addr_{i}", f"nft-{i}", code)
            assert low <= float(result["amount"]) <= high


class TestGalleryFeedsAPI:
    """Latest and featured feeds"""

    def test_feeds_follow_tier(self, client: TestClient, clock):
        clock.step = 1.0
        _submit(client, "addr_a", "nft-featured", "1")
        _submit(client, "addr_b", "nft-general", "2")
        _submit(client, "addr_c", "nft-hidden", "3")

        latest = client.get("/gallery/latest").json()["result"]["nftList"]
        featured = client.get("/gallery/latest/featured").json()["result"]["nftList"]

        assert [item["nftId"] for item in latest] == ["nft-general", "nft-featured"]
        assert [item["nftId"] for item in featured] == ["nft-featured"]
        assert latest[0]["timestamp"].endswith("Z")

    def test_latest_capped(self, client: TestClient, clock):
        clock.step = 1.0
        for i in range(10):
            _submit(client, f"addr_{i}", f"nft-{i}", "2")

        latest = client.get("/gallery/latest").json()["result"]["nftList"]

        assert [item["nftId"] for item in latest] == [f"nft-{i}" for i in range(9, 1, -1)]

    def test_empty_feeds(self, client: TestClient):
        assert client.get("/gallery/latest").json()["result"] == {"nftList": []}
        assert client.get("/gallery/latest/featured").json()["result"] == {"nftList": []}


class TestMyGalleryAPI:
    def test_my_gallery(self, client: TestClient):
        _submit(client, "addr_a", "nft-1")
        _submit(client, "addr_a", "nft-2")

        result = client.get("/gallery/addr_a").json()["result"]

        assert result == {"nftIdList": ["nft-1", "nft-2"], "isRewarded": True}

    def test_unknown_address(self, client: TestClient):
        result = client.get("/gallery/addr_z").json()["result"]
        assert result == {"nftIdList": [], "isRewarded": False}


class TestGalleryLoginAPI:
    def test_login_and_status(self, client: TestClient, wallet):
        login = client.post("/gallery/sign/login").json()["result"]
        assert login["qrcode"] == f"station://{login['requestKey']}"

        challenge = client.get(f"/gallery/requests/{login['requestKey']}").json()["result"]["message"]
        client.post(
            "/nft/callback",
            json={"requestKey": login["requestKey"], "approve": True, "signData": wallet.login_sign_data(challenge)},
        )

        result = client.get(f"/gallery/requests/{login['requestKey']}").json()["result"]
        assert result["status"] == 1
        assert result["signer"] == wallet.address
