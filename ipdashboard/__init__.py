"""IPDashboard backend - response cache and health surface.

Serves Actual / Estimate / Budget / Forecast (AEBF) data for the FP and HC
divisions with a request-keyed response cache in front of PostgreSQL.

Basic usage:
    >>> from ipdashboard.api.app import create_app
    >>> app = create_app()
"""

from dotenv import load_dotenv

load_dotenv()

__version__ = "0.1.0"

__all__ = ["__version__"]
