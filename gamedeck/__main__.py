from gamedeck.main import run

run()
