from home_library.cli import app

app(prog_name="home-library")
