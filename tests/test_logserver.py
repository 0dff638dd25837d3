import pytest

from logserver.main import create_app
from logserver.models import ChannelManager


@pytest.fixture
def client(tmp_path):
    app = create_app(str(tmp_path / "log"))
    app.config['TESTING'] = True
    return app.test_client()


def test_create_and_list_channels(client):
    response = client.post('/api/channels', json={'name': 'temp', 'units': 'K'})
    assert response.status_code == 201
    assert response.get_json() == {'name': 'temp', 'type': 'double', 'units': 'K',
                                   'description': '', 'samples': 0}

    response = client.get('/api/channels')
    assert response.status_code == 200
    assert [c['name'] for c in response.get_json()] == ['temp']

    response = client.get('/api/channels/temp')
    assert response.get_json()['units'] == 'K'


def test_channel_errors(client):
    client.post('/api/channels', json={'name': 'temp'})
    assert client.post('/api/channels', json={'name': 'temp'}).status_code == 409
    assert client.post('/api/channels', json={'name': 'Time'}).status_code == 400
    assert client.post('/api/channels', json={'name': 'x', 'type': 'complex'}).status_code == 400
    assert client.post('/api/channels', json={'units': 'K'}).status_code == 400
    response = client.post('/api/channels')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'No data provided'
    assert client.get('/api/channels/missing').status_code == 404
    assert client.post('/api/channels/missing/values', json={'value': 1}).status_code == 404


def test_values_round_trip(client):
    client.post('/api/channels', json={'name': 'temp', 'units': 'K'})
    response = client.post('/api/channels/temp/values', json={'value': 1.5, 'time': 10})
    assert response.status_code == 201
    assert response.get_json() == {'channel': 'temp', 'sample_id': 0, 'time': 10.0}
    response = client.post('/api/channels/temp/values', json={'value': '2.5', 'time': 20})
    assert response.get_json()['sample_id'] == 1
    assert client.post('/api/channels/temp/values', json={'value': 'warm'}).status_code == 400
    assert client.post('/api/channels/temp/values', json={'time': 30}).status_code == 400

    data = client.get('/api/channels/temp/values').get_json()
    assert data['units'] == 'K'
    assert data['SampleIDNumber'] == [0, 1]
    assert data['Time'] == [10.0, 20.0]
    assert data['values'] == [1.5, 2.5]
    assert client.get('/api/channels/temp').get_json()['samples'] == 2


def test_value_queries(client):
    client.post('/api/channels', json={'name': 'count', 'type': 'long'})
    for t, v in ((1, 10), (2, 20), (3, 30), (4, 40)):
        client.post('/api/channels/count/values', json={'value': v, 'time': t})

    assert client.get('/api/channels/count/values?last=2').get_json()['values'] == [30, 40]
    assert client.get('/api/channels/count/values?start=2&end=3').get_json()['values'] == [20, 30]
    assert client.get('/api/channels/count/values?start=2&last=1').get_json()['values'] == [40]
    assert client.get('/api/channels/count/values?last=0').get_json()['values'] == []
    assert client.get('/api/channels/count/values?last=x').status_code == 400
    assert client.get('/api/channels/count/values?start=soon').status_code == 400


def test_string_channel(client):
    client.post('/api/channels', json={'name': 'note', 'type': 'string'})
    client.post('/api/channels/note/values', json={'value': 'hello world', 'time': 1})
    assert client.get('/api/channels/note/values').get_json()['values'] == ['hello world']


def test_directories(client):
    response = client.post('/api/dirs', json={'name': 'sub'})
    assert response.status_code == 201
    assert response.get_json()['path'] == 'sub'
    assert client.post('/api/dirs', json={'name': 'sub'}).status_code == 409
    assert client.post('/api/dirs', json={}).status_code == 400
    assert client.get('/api/dirs').get_json() == {'dir': '', 'directories': ['sub']}

    response = client.post('/api/channels', json={'name': 'v', 'dir': 'sub'})
    assert response.status_code == 201
    assert client.get('/api/channels').get_json() == []
    assert [c['name'] for c in client.get('/api/channels?dir=sub').get_json()] == ['v']
    client.post('/api/channels/v/values', json={'value': 3, 'dir': 'sub'})
    assert client.get('/api/channels/v/values?dir=sub').get_json()['values'] == [3.0]

    assert client.get('/api/dirs?dir=../..').status_code == 400
    assert client.get('/api/dirs?dir=nope').status_code == 404


def test_manager_skips_foreign_files(tmp_path):
    manager = ChannelManager(str(tmp_path))
    (tmp_path / "other.sdds").write_text("SDDS1\n&column name=x, type=double, &end\n"
                                         "&data mode=ascii, &end\n")
    manager.create_channel('kept')
    assert [c['name'] for c in manager.list_channels()] == ['kept']
