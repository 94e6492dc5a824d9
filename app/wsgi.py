from app.umbra import create_app

app = create_app()
