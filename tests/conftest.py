import json
import pytest
import requests


def make_response(status=200, body=None, text=None):
    """A real requests.Response with the content already in place"""

    r = requests.Response()
    r.status_code = status
    r.reason = "Scripted"
    if text is None:
        text = "" if body is None else json.dumps(body)
    r._content = text.encode("utf-8")
    r._content_consumed = True
    r.encoding = "utf-8"
    return r


class FakeSession:
    """Stand in for requests.Session.  Replies are scripted per method
    and URL and every request is recorded in calls."""

    def __init__(self):
        self.replies = {}
        self.calls = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.closed = True

    def reply(self, method, url, reply):
        """reply is a Response or an exception to raise"""
        self.replies.setdefault((method, url), []).append(reply)

    def _request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))

        queue = self.replies.get((method, url))
        if not queue:
            raise requests.exceptions.ConnectionError("nothing scripted for %s %s" % (method, url))

        # The last reply sticks
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply

        reply.url = url
        return reply

    def get(self, url, **kwargs):
        return self._request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._request("POST", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._request("DELETE", url, **kwargs)

    def requests_for(self, method):
        return [url for (m, url, _) in self.calls if m == method]


LOGIN_URL = "https://hub.docker.com/v2/users/login/"
TAGS_URL = "https://hub.docker.com/v2/repositories/me/app/tags"


def tag_url(name):
    return "%s/%s/" % (TAGS_URL, name)


@pytest.fixture
def session():
    s = FakeSession()
    s.reply("POST", LOGIN_URL, make_response(200, {"token": "sekrit"}))
    return s
