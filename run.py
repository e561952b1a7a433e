"""A dev entrypoint for running the ID service."""

import os

from snowdrift import create_app

app = create_app(os.getenv("ENV", "development"))

if __name__ == "__main__":
    app.run(port=int(os.getenv("SERVER_PORT", 8080)), debug=True, use_reloader=False)
