def test_request_id_header_is_present(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID")


def test_metrics_endpoint_returns_prometheus_text(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    body = response.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "booking_fulfillment_outcomes_total" in body
    assert "checkout_sessions_total" in body


def test_metrics_label_paths_by_route_template(client):
    client.get("/tutors/123456")

    body = client.get("/metrics").text

    assert 'path="/tutors/{tutor_id}"' in body
    assert 'path="/tutors/123456"' not in body
