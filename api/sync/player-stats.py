"""Vercel Serverless Function syncing weekly stats from the performance sheet, one batch of users per call."""

from apl.endpoints import JsonHandler, handle_sync_player_stats
from apl.logging_config import setup_logging

setup_logging(log_to_file=False)


class handler(JsonHandler):
    endpoint = staticmethod(handle_sync_player_stats)
