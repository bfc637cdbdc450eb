"""Vercel Serverless Function returning rows of the player performance sheet."""

from apl.endpoints import JsonHandler, handle_player_performance
from apl.logging_config import setup_logging

setup_logging(log_to_file=False)


class handler(JsonHandler):
    endpoint = staticmethod(handle_player_performance)
