"""Top-level package for the envelope budget.

The primary modules are:

* ``engine`` - pure budget allocation and debt-payoff computations
* ``db`` - the SQLite store and row validation
* ``workflows`` - store-backed operations that run the engine atomically
* ``visualization`` - functions that generate Plotly figures
* ``dashboard`` - a Streamlit app that ties everything together

To run the dashboard from the command line you can execute:

```bash
streamlit run envelope_budget/dashboard.py
```
"""

from . import engine  # noqa: F401  # re-exported for convenience
from . import visualization  # noqa: F401  # re-exported for convenience
# Streamlit may not be installed in all environments (e.g. during unit
# testing), so the dashboard is optional.
try:
    from . import dashboard  # type: ignore  # noqa: F401
except ModuleNotFoundError:
    dashboard = None  # type: ignore


__all__ = ["engine", "visualization", "dashboard"]
