from hostmon.cli import run

run()
