from app.main import app
import os

if __name__ == "__main__":
    # Direct import of app.main initialises the data directories. Bind to
    # localhost only: the harvester drives a browser holding a payroll login.
    port = int(os.environ.get("PORT", 8080))
    app.run(host="127.0.0.1", port=port)
