from envd_cli.main import run

run()
