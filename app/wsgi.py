from app.lending import create_app

app = create_app()
