from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

from blindheist.rooms import RoomManager

socketio = SocketIO(async_mode=None)
room_manager = RoomManager()

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = flask_app.config.get('CORS_ORIGINS') or []
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)
    room_manager.init_app(flask_app)

    # Import and register blueprints here
    from blindheist.main import main
    flask_app.register_blueprint(main)

    # Register Socket.IO event handlers
    # Importing here ensures the handlers bind to the initialized socketio instance
    from blindheist.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from blindheist.services.heist.scheduler import schedule_room_sweep
    schedule_room_sweep(flask_app)

    @click.command('list-maps')
    def list_maps_command():
        """Prints the map catalogue."""
        for m in room_manager.maps():
            click.echo(f"{m['id']:<10} {m['name']:<14} {m['difficulty']:<7} {m['size']:<6} "
                       f"loot={m['lootCount']} cameras={m['cameraCount']}")

    @click.command('sweep-rooms')
    def sweep_rooms_command():
        """Deletes rooms that have been waiting longer than ROOM_MAX_AGE_SEC."""
        removed = room_manager.cleanup()
        click.echo(f'Removed {removed} stale room(s).')

    flask_app.cli.add_command(list_maps_command)
    flask_app.cli.add_command(sweep_rooms_command)

    return flask_app
