#
# Docker Hub API for python - just enough of it to reap old tags.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
#
# Docker Hub API (v2):
#   POST   https://hub.docker.com/v2/users/login/
#   GET    https://hub.docker.com/v2/repositories/<user>/<image>/tags
#   DELETE https://hub.docker.com/v2/repositories/<user>/<image>/tags/<tag>/
#
# Unlike the registry API, Docker Hub paginates in the document itself:
# every page carries the URL of the next one in "next".
#

import sys
import time
import requests
from duration import parse_timestamp, format_duration

HUB_API = "https://hub.docker.com/v2"


class HubError(Exception):
    """Docker Hub answered, but not with anything we can use."""


def _auth_headers(token):
    return {"Authorization": "JWT %s" % token,
            "Content-Type": "application/json"}


def login(session, username, password):
    """Exchange username and password for a JWT token.

    Transport errors and HTTP errors are raised as
    requests.exceptions.RequestException, a reply without a token
    as HubError."""

    with session.post("%s/users/login/" % HUB_API,
                      json={"username": username, "password": password},
                      headers={"Content-Type": "application/json"}) as r:
        r.raise_for_status()
        auth = r.json()

    if not isinstance(auth, dict) or not auth.get("token"):
        raise HubError("no token in authentication response")

    return auth["token"]


class Page:
    """One page of a paginated listing.  Only next and results are
    used, count and previous are kept for completeness."""

    def __init__(self, count, next_url, previous_url, results):
        self.count = count
        self.next_url = next_url
        self.previous_url = previous_url
        self.results = results

    @classmethod
    def from_json(cls, doc):
        if not isinstance(doc, dict):
            raise HubError("page is not a JSON object: %.80r" % (doc,))

        results = doc.get("results")
        if results is None:
            results = []
        if not isinstance(results, list):
            raise HubError("page results is not a list: %.80r" % (results,))

        count = doc.get("count")
        if count is None:
            count = 0
        if not isinstance(count, int) or isinstance(count, bool):
            raise HubError("page count is not an integer: %.80r" % (count,))

        for key in ("next", "previous"):
            if not isinstance(doc.get(key), (str, type(None))):
                raise HubError("page %s is not a URL: %.80r" % (key, doc[key]))

        # null and a missing key both mean "no more pages"
        return cls(count, doc.get("next") or "", doc.get("previous") or "", results)


class Tag:
    """A tag of an image.

    last_updated is what Docker Hub calls it, but we treat it as the
    time the tag was created.  It is kept both as a datetime and as
    nanoseconds since the epoch, the latter is used to compute the age.
    """

    def __init__(self, name, last_updated, last_updated_ns):
        self.name = name
        self.last_updated = last_updated
        self.last_updated_ns = last_updated_ns

    @classmethod
    def from_json(cls, record):
        try:
            name = record["name"]
            when, when_ns = parse_timestamp(record["last_updated"])
        except (KeyError, TypeError, ValueError) as e:
            raise HubError("undecodable tag %.80r: %s" % (record, e)) from e

        if not isinstance(name, str):
            raise HubError("tag name is not a string: %r" % (name,))

        return cls(name, when, when_ns)

    def age(self, now_ns):
        """Nanoseconds since the tag was last updated"""
        return now_ns - self.last_updated_ns

    def __eq__(self, other):
        if not isinstance(other, Tag):
            return NotImplemented
        return (self.name, self.last_updated_ns) == (other.name, other.last_updated_ns)

    def __repr__(self):
        return "Tag(%r, %s)" % (self.name, self.last_updated.isoformat())


def list_pages(session, token, url, item_type):
    """Get url and every page after it, and return all the results as
    a list of item_type.

    The pages are collected as they come, without looking at the
    results, and are only turned into item_type (by calling
    item_type.from_json on each record) once the last page is in.
    This way the same walk works for any listing that uses the
    count/next/previous/results envelope.

    Any error aborts the whole listing, there are no partial results.
    A next link pointing back to a page we have already seen is an
    error too, otherwise we would go round forever.
    """

    all_data = []
    seen = set()

    while url:
        if url in seen:
            raise HubError("pagination loops back to %s" % url)
        seen.add(url)

        with session.get(url, headers=_auth_headers(token)) as r:
            r.raise_for_status()
            page = Page.from_json(r.json())

        all_data.extend(page.results)
        url = page.next_url

    return [item_type.from_json(record) for record in all_data]


class HubRegistry:
    """Class to handle the tags of one image on Docker Hub.

    Example:

       import sys
       import requests
       from HubRegistry import HubRegistry, HubError

       try:
          hub = HubRegistry("myuser", "secret", "myimage")
       except (requests.exceptions.RequestException, HubError):
          sys.exit("Failed to log in to Docker Hub")

       for tag in hub.get_tags():
           print("  Tag: %s (%s)" % (tag.name, tag.last_updated))
    """

    def __init__(self, username, password, image, session=None):
        """Log in to Docker Hub as username.  The token is fetched once
        and never refreshed, a run that outlives it will start failing.

        The object has debug and verbose flags which you can set
        directly to possibly get useful information.
        """

        self.username = username
        self.image = image
        self.session = session or requests.Session()
        self.debug = False
        self.verbose = False

        self.token = login(self.session, username, password)


    def tags_url(self):
        return "%s/repositories/%s/%s/tags" % (HUB_API, self.username, self.image)


    def tag_url(self, name):
        return "%s/repositories/%s/%s/tags/%s/" % (HUB_API, self.username, self.image, name)


    def get_tags(self):
        """Get all tags for the image, in the order Docker Hub lists them"""

        tags = list_pages(self.session, self.token, self.tags_url(), Tag)

        if self.verbose:
            print("Found %d tags for %s/%s" % (len(tags), self.username, self.image))

        return tags


    ## Delete functions

    def delete_tag(self, name):
        """Delete a tag and return the HTTP status code, 204 means it
        went well.  Transport errors are not caught."""

        with self.session.delete(self.tag_url(name),
                                 headers={"Authorization": "JWT %s" % self.token}) as r:
            if self.debug:
                print("--- Result: %s: %s" % (r.status_code, r.text.rstrip()))

            return r.status_code


    def reap(self, tags, threshold_ns, now_ns=None):
        """Delete every tag older than threshold_ns nanoseconds.  A tag
        exactly threshold_ns old is kept.

        Without now_ns the age of each tag is taken against the wall
        clock at the moment the tag is looked at.

        A delete that gets something else than 204 back is reported
        and skipped.  A delete that can't be sent at all raises
        requests.exceptions.RequestException, and the tags after it
        are left alone.

        Returns a tuple: [ deleted tag names ], [ failed tag names ]
        """

        deleted = []
        failed = []

        for tag in tags:
            age = tag.age(time.time_ns() if now_ns is None else now_ns)
            if age <= threshold_ns:
                continue

            print("deleting tag %s age %s" % (tag.name, format_duration(age)))

            status = self.delete_tag(tag.name)
            if status != 204:
                print("unexpected status code %s deleting tag %s" % (status, tag.name),
                      file=sys.stderr)
                failed.append(tag.name)
                continue

            deleted.append(tag.name)

        if self.verbose:
            print("Deleted %d of %d tags, %d failed" % (len(deleted), len(tags), len(failed)))

        return deleted, failed
