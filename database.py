# database.py

from flask_sqlalchemy import SQLAlchemy

# Bound to the Flask app in app.py with db.init_app(app)
db = SQLAlchemy()
