"""Tests for price and round API endpoints."""


class TestPriceEndpoints:
    """Test suite for /api/prices."""

    def test_list_prices_empty(self, test_client):
        """Test listing before the first refresh."""
        data = test_client.get("/api/prices").json()

        assert data == {'prices': [], 'total': 0}

    def test_list_prices(self, test_client, live_rounds):
        """Test every cached price is listed with its asset name."""
        data = test_client.get("/api/prices").json()

        assert data['total'] == 3
        btc = data['prices'][0]
        assert btc['symbol'] == 'BTC'
        assert btc['name'] == 'Bitcoin'
        assert btc['price'] == 100.0
        assert btc['change_24h_pct'] == 1.5

    def test_get_price_case_insensitive(self, test_client, live_rounds):
        """Test single price lookup."""
        response = test_client.get("/api/prices/eth")

        assert response.status_code == 200
        assert response.json()['price'] == 50.0

    def test_get_price_unknown(self, test_client, live_rounds):
        """Test 404 for symbols without a cached price."""
        response = test_client.get("/api/prices/DOGE")

        assert response.status_code == 404
        assert 'DOGE' in response.json()['detail']


class TestRoundEndpoints:
    """Test suite for /api/rounds."""

    def test_list_rounds(self, test_client, live_rounds):
        """Test active rounds are listed without individual predictions."""
        data = test_client.get("/api/rounds").json()

        assert data['total'] == 3
        assert {r['symbol'] for r in data['rounds']} == {'BTC', 'ETH', 'LINK'}
        assert 'predictions' not in data['rounds'][0]
        assert data['rounds'][0]['status'] == 'active'

    def test_get_round(self, test_client, service, live_rounds):
        """Test round lookup reflects prediction counts."""
        round_id = live_rounds['BTC'].id
        service.submit_prediction('alice', 'BTC', 'up')
        service.submit_prediction('bob', 'BTC', 'down')
        service.submit_prediction('carol', 'BTC', 'up')

        data = test_client.get(f"/api/rounds/{round_id}").json()

        assert data['id'] == round_id
        assert data['start_price'] == 100.0
        assert data['total_predictions'] == 3
        assert data['up_predictions'] == 2
        assert data['down_predictions'] == 1
        assert data['end_price'] is None

    def test_list_resolved_rounds(self, test_client, registry, live_rounds):
        """Test resolved rounds are listed while in retention."""
        round_id = live_rounds['ETH'].id
        registry.mark_resolved(round_id, 55.0)

        data = test_client.get("/api/rounds/resolved").json()

        assert data['total'] == 1
        assert data['rounds'][0]['id'] == round_id
        assert data['rounds'][0]['status'] == 'resolved'
        assert data['rounds'][0]['end_price'] == 55.0
        assert test_client.get("/api/rounds").json()['total'] == 2

    def test_get_round_unknown(self, test_client):
        """Test 404 for unknown rounds."""
        assert test_client.get("/api/rounds/nope").status_code == 404
