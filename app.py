# app.py
"""
Dev server entrypoint: `python app.py` or `flask --app app run`.
"""

import os

from backend.app import create_app

# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port, debug=True)
