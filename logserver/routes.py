from flask import request
from flask_restful import Resource, Api

from .models import channel_manager
from sddsio.exceptions import (SDDSError, UsageError, TypeMismatchError, OutOfRangeError,
                               UnknownNameError, DuplicateDefinitionError)

ERROR_STATUS = (
    (DuplicateDefinitionError, 409),
    (UnknownNameError, 404),
    (UsageError, 400),
    (TypeMismatchError, 400),
    (OutOfRangeError, 400),
)


def init_routes(api: Api):
    # Directories
    api.add_resource(DirectoryList, '/api/dirs')

    # Channels
    api.add_resource(ChannelList, '/api/channels')
    api.add_resource(ChannelDetail, '/api/channels/<string:name>')
    api.add_resource(ChannelValues, '/api/channels/<string:name>/values')


def error_response(e: SDDSError):
    for kind, status in ERROR_STATUS:
        if isinstance(e, kind):
            return {'error': e.message}, status
    return {'error': e.message}, 500


def _float_arg(name):
    text = request.args.get(name)
    if text is None or text == '':
        return None
    try:
        return float(text)
    except ValueError:
        raise UsageError(f"{name} must be a number")


class DirectoryList(Resource):
    def get(self):
        directory = request.args.get('dir')
        try:
            return {'dir': directory or '', 'directories': channel_manager.list_directories(directory)}
        except SDDSError as e:
            return error_response(e)

    def post(self):
        data = request.get_json(silent=True)
        if not data or not data.get('name'):
            return {'error': 'Directory name required'}, 400
        try:
            path = channel_manager.make_directory(data['name'], data.get('dir'))
        except SDDSError as e:
            return error_response(e)
        return {'message': 'Directory created', 'path': path}, 201


class ChannelList(Resource):
    def get(self):
        try:
            return channel_manager.list_channels(request.args.get('dir'))
        except SDDSError as e:
            return error_response(e)

    def post(self):
        data = request.get_json(silent=True)
        if not data:
            return {'error': 'No data provided'}, 400
        if not data.get('name'):
            return {'error': 'Missing required field: name'}, 400
        try:
            channel = channel_manager.create_channel(
                data['name'], data.get('type', 'double'), data.get('units', ''),
                data.get('description', ''), data.get('dir'))
        except SDDSError as e:
            return error_response(e)
        return channel, 201


class ChannelDetail(Resource):
    def get(self, name):
        try:
            return channel_manager.get_channel(name, request.args.get('dir'))
        except SDDSError as e:
            return error_response(e)


class ChannelValues(Resource):
    def get(self, name):
        """Samples, optionally limited by ?start=&end= (seconds) and ?last=N"""
        try:
            last = request.args.get('last')
            if last is not None:
                if not last.isdigit():
                    raise UsageError("last must be a non-negative integer")
                last = int(last)
            return channel_manager.get_values(name, request.args.get('dir'),
                                              _float_arg('start'), _float_arg('end'), last)
        except SDDSError as e:
            return error_response(e)

    def post(self, name):
        data = request.get_json(silent=True)
        if not data or 'value' not in data:
            return {'error': 'Missing required field: value'}, 400
        try:
            result = channel_manager.add_value(name, data['value'], data.get('dir'),
                                               data.get('time'))
        except SDDSError as e:
            return error_response(e)
        return result, 201
