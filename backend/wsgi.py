from tokoberas import create_app

app = create_app()
