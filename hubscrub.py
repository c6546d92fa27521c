#!/usr/bin/env python3
#
# hub-scrub: delete the tags of a Docker Hub image that are older than
# a threshold.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# Prerequisites:
# - pip install requests python-dateutil
#
# Usage:
#   With log:
#     ./hubscrub.py -u myuser -p secret -i myimage -t 720h 2>&1 | tee scrub-$(date '+%F-%T').log
#   Without log:
#     ./hubscrub.py -u myuser -p secret -i myimage -t 720h
#
# Bugs:
# - If listing the tags fails we exit 0, every other failure exits 1.
#   It has always been like that and cron jobs depend on it.
# - A delete that can't be sent stops the run, leaving the rest of the
#   old tags for next time.
#

import sys
import argparse
import requests
from duration import parse_duration
from HubRegistry import HubRegistry, HubError


def main(argv=None):
    parser = argparse.ArgumentParser(description='Delete Docker Hub tags older than a threshold')
    parser.add_argument('-u', '--username', required=True, help='Docker Hub user name')
    parser.add_argument('-p', '--password', required=True, help='Docker Hub password')
    parser.add_argument('-i', '--image', required=True, help='Docker image')
    parser.add_argument('-t', '--threshold', required=True,
                        help='Tag age threshold, e.g. 720h or 1h30m')
    parser.add_argument('-v', '--verbose', action='store_true', default=False,
                        help='Print tag counts and a summary')
    parser.add_argument('-D', '--debug', action='store_true', default=False,
                        help='Print the result of every delete')
    args = parser.parse_args(argv)

    try:
        threshold = parse_duration(args.threshold)
    except ValueError as e:
        print("unable to parse threshold: %s" % e, file=sys.stderr)
        sys.exit(1)

    sys.stdout.reconfigure(line_buffering=True)

    with requests.Session() as session:
        scrub(args, threshold, session)


def scrub(args, threshold, session):
    """Log in, list the tags and reap them.  Exits on failure."""

    try:
        hub = HubRegistry(args.username, args.password, args.image, session=session)
    except (requests.exceptions.RequestException, HubError) as e:
        print("unable to authenticate with registry: %s" % e, file=sys.stderr)
        sys.exit(1)

    hub.verbose = args.verbose or args.debug
    hub.debug = args.debug

    try:
        tags = hub.get_tags()
    except (requests.exceptions.RequestException, HubError) as e:
        print("unable to list tags: %s" % e, file=sys.stderr)
        sys.exit(0)

    try:
        hub.reap(tags, threshold)
    except requests.exceptions.RequestException as e:
        print("unable to perform delete request: %s" % e, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
