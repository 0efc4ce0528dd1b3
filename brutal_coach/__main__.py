from brutal_coach.bot import run

run()
