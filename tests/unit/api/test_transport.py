from carrier_routing.api.transport import RequestsTransport, clip, response_json


def _retry(transport):
    return transport.session.get_adapter("https://carrier.example/api").max_retries


def test_post_is_never_resent_after_a_response():
    retry = _retry(RequestsTransport(max_retries=3))

    for status in (429, 500, 502, 503, 504):
        assert not retry.is_retry("POST", status)
        assert retry.is_retry("GET", status)
    assert retry.total == 3


def test_both_schemes_share_the_retry_policy():
    t = RequestsTransport(timeout=7)
    assert t.timeout == 7
    assert t.session.get_adapter("http://x").max_retries is t.session.get_adapter("https://x").max_retries
    t.close()


def test_clip_cuts_long_bodies():
    assert clip({"a": 1}) == '{"a": 1}'
    assert clip("x" * 10, limit=4) == "xxxx..."


def test_response_json_falls_back_to_text():
    class NotJson:
        text = "<html>busy</html>"

        def json(self):
            raise ValueError("no json")

    assert response_json(NotJson()) == "<html>busy</html>"
