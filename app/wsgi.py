from app.archive import create_app

app = create_app()
