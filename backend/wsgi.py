from paytrack import create_app

app = create_app()
