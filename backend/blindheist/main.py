from flask import Blueprint, jsonify
from blindheist import room_manager
from blindheist.errors import RoomNotFound
from blindheist.services.heist.catalogue import DIFFICULTIES

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Blind Heist server!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'rooms': len(room_manager.rooms)})

@main.route('/api/maps')
def list_maps():
    return jsonify({'maps': room_manager.maps(), 'difficulties': list(DIFFICULTIES)})

@main.route('/api/rooms/<string:code>')
def get_room(code):
    try:
        return jsonify(room_manager.room_summary(code))
    except RoomNotFound:
        return jsonify({'error': 'Room not found'}), 404
