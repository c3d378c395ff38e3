"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py seed-demo
    flask --app run.py create-user reviewer --permission levantamientos:ver \
        --permission levantamientos:revisar --permission levantamientos:aprobar
    flask --app run.py --debug run

"""

from survey_review import create_app

# WSGI application object. `flask run` looks for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # Dev only; use `flask run` or a WSGI server otherwise.
    app.run(debug=True)
