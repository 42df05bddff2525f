"""
WSGI entry point — used by gunicorn in Procfile.

Run a single worker: the monitoring scheduler lives in-process.
"""
from leadmonitor import create_app

app = create_app()

if __name__ == '__main__':
    import os
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 3001)), threaded=True)
