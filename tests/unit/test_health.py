"""Tests for the OAuth landing app endpoints."""

from compass_portal.ui.popup import BrowserPopup


def test_health_check(client):
    """Test basic health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


def test_success_closes_matching_popup(client, registry):
    """Test the success redirect closes the popup for its state."""
    popup = BrowserPopup("https://login.example/authorize?state=s1", "s1", 600, 700)
    other = BrowserPopup("https://login.example/authorize?state=s2", "s2", 600, 700)
    registry.register(popup)
    registry.register(other)

    response = client.get("/oauth/success", params={"state": "s1"})

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Authorization complete" in response.text
    assert popup.closed
    assert not other.closed


def test_error_closes_all_popups(client, registry):
    """Test the error redirect closes every pending popup and escapes the message."""
    popup = BrowserPopup("https://login.example/authorize?state=s1", "s1", 600, 700)
    registry.register(popup)

    response = client.get("/oauth/error", params={"message": "<b>consent denied</b>"})

    assert response.status_code == 200
    assert "&lt;b&gt;consent denied&lt;/b&gt;" in response.text
    assert popup.closed
    assert popup.result == "error"
    assert popup.message == "<b>consent denied</b>"


def test_error_without_message(client):
    response = client.get("/oauth/error")
    assert "Authorization was not completed." in response.text


def test_pages_render_result_template(client):
    """Test both landing pages come from the result template."""
    success = client.get("/oauth/success", params={"state": "unknown"})
    failure = client.get("/oauth/error", params={"message": "denied"})

    assert success.template.name == "oauth_result.html"
    assert success.context["succeeded"] is True
    assert failure.template.name == "oauth_result.html"
    assert failure.context["title"] == "Authorization failed"
    assert failure.context["message"] == "denied"
    assert "Compass Portal" in failure.text
