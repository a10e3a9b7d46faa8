from logtail.cli import app

app()
