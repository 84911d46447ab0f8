"""
CLI de Flask para el backend de EcoMove (con FLASK_APP=wsgi.py):
    python manage.py run
    python manage.py shell
    python manage.py db upgrade
"""

from flask.cli import main

if __name__ == "__main__":
    main()
