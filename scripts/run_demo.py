"""Query an NTP server and print the UTC time it reports."""
import logging
import sys

from ntp_query import NtpError, get_network_time
from ntp_query.config import query_defaults


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    params = query_defaults()
    if len(sys.argv) > 1:
        params["server"] = sys.argv[1]

    try:
        when = get_network_time(params["server"], int(params["port"]), params["timeout_ms"])
    except NtpError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    print(when.isoformat())


if __name__ == "__main__":
    main()
