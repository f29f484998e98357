from app.cde import create_app

app = create_app()
