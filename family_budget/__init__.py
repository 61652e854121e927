"""Top-level package for the Family Budget tracker.

The primary modules are:

* ``calculations`` – budget statistics, category/payment breakdowns and
  calendar-month series
* ``wealth`` – wealth sharing visibility and asset aggregation
* ``state`` – the per-session application state handed to every screen
* ``db`` – SQLite persistence
* ``visualization`` – Plotly figures for the aggregates
* ``dashboard`` – a Streamlit app that ties everything together

To run the dashboard from the command line you can execute:

```bash
streamlit run family_budget/dashboard.py
```

or use ``run_dashboard.py`` in the project root.
"""

from . import calculations  # noqa: F401  # re-exported for convenience
from . import wealth  # noqa: F401  # re-exported for convenience

__all__ = ["calculations", "wealth"]
