"""Tests for the annotator base class."""

import io

import pytest

from annotator_host.errors import RequestException
from annotator_host.plugins import BaseAnnotator, endpoint


class Greeter(BaseAnnotator):
    annotator_id = "greeter"
    version = "0.1"

    @endpoint
    def greet(self, name, greeting="Hello"):
        return f"{greeting} {name}"

    @endpoint
    def upload(self, body):
        return {"length": len(body)}

    @endpoint
    def nothing(self):
        return None

    @endpoint
    def raw(self):
        return b"\x00\x01"

    def helper(self):
        return "not an endpoint"


@pytest.fixture
def greeter():
    return Greeter()


class TestHandleRequest:
    """Tests for routing web-app requests to endpoints."""

    def test_query_arguments(self, greeter):
        """Test endpoint arguments from the query string."""
        result = greeter.handle_request("GET", "/ext/greeter/greet?name=Ada", None, None)
        assert result == b"Hello Ada"

    def test_optional_arguments(self, greeter):
        """Test optional arguments can be given."""
        result = greeter.handle_request(
            "GET", "/ext/greeter/greet?name=Ada&greeting=Hi", None, None
        )
        assert result == b"Hi Ada"

    def test_form_arguments(self, greeter):
        """Test endpoint arguments from a form body."""
        result = greeter.handle_request(
            "POST",
            "/ext/greeter/greet",
            "application/x-www-form-urlencoded; charset=UTF-8",
            io.BytesIO(b"name=Grace+Hopper"),
        )
        assert result == b"Hello Grace Hopper"

    def test_raw_body(self, greeter):
        """Test endpoints can take the raw request body."""
        result = greeter.handle_request(
            "POST", "/ext/greeter/upload", "text/plain", io.BytesIO("héllo".encode())
        )
        assert result == b'{"length": 5}'

    def test_none_and_bytes_results(self, greeter):
        """None is an empty response and bytes are passed through."""
        assert greeter.handle_request("GET", "/ext/greeter/nothing", None, None) == b""
        assert greeter.handle_request("GET", "/ext/greeter/raw", None, None) == b"\x00\x01"

    def test_missing_argument(self, greeter):
        """A missing required argument is a bad request."""
        with pytest.raises(RequestException) as exc_info:
            greeter.handle_request("GET", "/ext/greeter/greet", None, None)
        assert exc_info.value.http_status == 400
        assert "name" in exc_info.value.message

    @pytest.mark.parametrize("name", ["helper", "missing", "_lock", "get_schema"])
    def test_unknown_endpoint(self, greeter, name):
        """Only decorated methods are endpoints."""
        with pytest.raises(RequestException) as exc_info:
            greeter.handle_request("GET", f"/ext/greeter/{name}", None, None)
        assert exc_info.value.http_status == 404


class TestStatus:
    """Tests for status and progress reporting."""

    def test_status_observers_notified(self, greeter):
        """Test status changes reach observers."""
        seen = []
        greeter.status_observers.append(seen.append)

        greeter.status = "Working..."

        assert greeter.status == "Working..."
        assert seen == ["Working..."]

    def test_failing_observer_does_not_stop_others(self, greeter):
        """A failing observer doesn't stop the others being notified."""
        seen = []

        def broken(status):
            raise ValueError("broken observer")

        greeter.status_observers.extend([broken, seen.append])
        greeter.status = "Done."

        assert seen == ["Done."]

    def test_percent_complete_is_clamped(self, greeter):
        """Progress stays between 0 and 100."""
        greeter.percent_complete = 150
        assert greeter.percent_complete == 100
        greeter.percent_complete = -5
        assert greeter.percent_complete == 0

    def test_uninstall_clears_version(self, greeter):
        """Uninstalling clears the instance version only."""
        greeter.uninstall()
        assert greeter.version is None
        assert Greeter.version == "0.1"


class TestOutputLayers:
    """Tests for the output_layers default."""

    def test_default_is_immutable(self, greeter):
        """Annotators without output layers share an empty tuple nobody can add to."""
        assert BaseAnnotator.output_layers == ()
        assert greeter.output_layers == ()
        with pytest.raises(AttributeError):
            greeter.output_layers.append("syllables")
