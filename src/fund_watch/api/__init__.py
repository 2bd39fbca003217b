"""REST front end over FundService."""

from fund_watch.api.app import create_app

__all__ = ["create_app"]
