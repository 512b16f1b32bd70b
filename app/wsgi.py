from app.foro import create_app

app = create_app()
