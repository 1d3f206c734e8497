"""
F08 - WSGI entry point for the account relationship importer.

WSGI hosts import this module and look for the ``app`` variable.  The
development server can also be started by running this file directly.

=============================================================================
DEPLOYMENT
=============================================================================

1. INSTALL
     pip install .

2. SET ENVIRONMENT VARIABLES
     SECRET_KEY=<a-long-random-string>
     DATABASE_URL=sqlite:////srv/relimport/instance/relimport.db
     LOCAL_DOMAIN=<your instance domain>

   Use an absolute path for SQLite: four slashes, three for the protocol
   prefix plus one for the filesystem root.  The web app and the worker
   must point at the same database.

3. INITIALISE THE DATABASE
     python init_db.py

4. START THE WORKER
   Confirmed imports are applied by a separate process:

     python run_import_worker.py

   or, from cron, one pass at a time:

     python run_import_worker.py --once

5. SERVE THE APP
   Point your WSGI server at ``wsgi:app``.

=============================================================================
LOCAL DEVELOPMENT
=============================================================================

  export SECRET_KEY=dev-only-not-for-production
  python wsgi.py

The app will be available at http://127.0.0.1:5000/settings/imports/

For testing:

  pip install -e ".[test]"
  pytest tests/ -v

=============================================================================
"""

from __future__ import annotations

from relimport import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
