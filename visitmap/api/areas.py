"""
Area and visit API endpoints.

Provides endpoints for:
- GET /api/areas - All areas with visitor counts (cached)
- GET /api/users - Visitor names, optionally for one area
- POST /api/mark - Record that a visitor has been to an area
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from visitmap.errors import QueryError, UnknownAreaError, ValidationError

logger = logging.getLogger(__name__)

areas_bp = Blueprint('areas', __name__, url_prefix='/api')


def _services():
    return current_app.extensions['visitmap']


def _internal_error():
    return jsonify({'error': 'Internal server error'}), 500


def parse_mark_request(payload) -> tuple:
    """
    Validate a mark request body.

    Returns (user, area_id) exactly as sent; only empty strings are rejected.

    Raises:
        ValidationError: body is not an object, or a field is missing or empty.
    """
    if not isinstance(payload, dict):
        raise ValidationError('invalid JSON')

    user = payload.get('user')
    area_id = payload.get('area_id')
    valid = isinstance(user, str) and isinstance(area_id, str) and user and area_id
    if not valid:
        raise ValidationError('user and area_id are required')

    return user, area_id


@areas_bp.route('/areas', methods=['GET'])
def list_areas():
    """
    List every area with the number of distinct visitors who marked it.

    Served from the area cache; counts may lag writes by up to the TTL.
    """
    try:
        areas = _services().cache.get_areas()
    except QueryError as e:
        logger.error(f'Listing areas failed: {e}')
        return _internal_error()

    return jsonify([area.to_dict() for area in areas])


@areas_bp.route('/users', methods=['GET'])
def list_users():
    """
    List visitor names.

    Query parameters:
    - area_id: ISO3 code, restrict to visitors who marked this area
    """
    area_id = request.args.get('area_id') or None

    try:
        names = _services().store.list_visitor_names(area_id)
    except QueryError as e:
        logger.error(f'Listing users (area_id={area_id}) failed: {e}')
        return _internal_error()

    return jsonify(names)


@areas_bp.route('/mark', methods=['POST'])
def mark_area():
    """
    Mark an area as visited, creating the visitor on first use.

    Body: {"user": "Alice", "area_id": "FRA"}, parsed as JSON whatever the
    declared Content-Type.
    Responds 200 with an empty body.
    """
    try:
        user, area_id = parse_mark_request(request.get_json(force=True, silent=True))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    store = _services().store
    try:
        user_id = store.get_or_create_visitor(user)
        store.record_mark(user_id, area_id)
    except UnknownAreaError:
        return jsonify({'error': 'unknown area'}), 404
    except QueryError as e:
        logger.error(f'Recording mark {user!r} -> {area_id} failed: {e}')
        return _internal_error()

    return '', 200
