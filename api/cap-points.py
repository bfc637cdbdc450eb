"""Vercel Serverless Function awarding the week's Orange / Purple cap bonuses."""

from apl.endpoints import JsonHandler, handle_cap_points
from apl.logging_config import setup_logging

setup_logging(log_to_file=False)


class handler(JsonHandler):
    endpoint = staticmethod(handle_cap_points)
