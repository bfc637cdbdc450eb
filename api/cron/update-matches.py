"""Vercel Cron Function refreshing match scorecards from the cricket API."""

from apl.endpoints import JsonHandler, handle_update_matches
from apl.logging_config import setup_logging

setup_logging(log_to_file=False)


class handler(JsonHandler):
    endpoint = staticmethod(handle_update_matches)
    wants_headers = True
