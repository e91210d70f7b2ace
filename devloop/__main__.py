from devloop.main import run

run()
