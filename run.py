from takeboard import create_app, db
from takeboard.models import Achievement, Contest, Event, Pack, Profile, Prop, Take, Team

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Profile": Profile,
        "Team": Team,
        "Event": Event,
        "Pack": Pack,
        "Prop": Prop,
        "Take": Take,
        "Contest": Contest,
        "Achievement": Achievement,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
