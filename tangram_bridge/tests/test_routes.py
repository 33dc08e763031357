"""
HTTP API tests (Flask test client).
"""

import pytest

from tangram_bridge import create_app
from tangram_bridge.bridge import InMemoryCalibrationStore

SQUARE_FRAME = {
    "objects": [
        {
            "name": "tangram_square",
            "class_id": 0,
            "pose": {"translation": [0.0, 0.0], "rotation_degrees": 0.0},
            "vertices": [[0, 0], [100, 0], [100, 100], [0, 100]],
        }
    ],
    "homography_applied": True,
    "timestamp": 0.0,
}


@pytest.fixture
def client():
    app = create_app()
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def test_health(client):
    """Test 1: Health endpoint."""
    response = client.get('/health')
    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['calibrated'] is False
    assert data['targets'] == 0


def test_put_targets(client):
    """Test 2: Valid targets load; malformed targets -> 400."""
    print("Test 2: Targets...", end=" ")

    response = client.put('/targets', json={"targets": [
        {"id": "t_square", "piece_type": "square", "position": [0.0, 0.0], "rotation": 0.0},
        {"id": "t_par", "piece_type": "parallelogram", "position": [1.0, 0.0], "flipped": True},
    ]})
    assert response.status_code == 200
    assert response.get_json()['targets'] == 2
    assert client.get('/health').get_json()['targets'] == 2

    response = client.put('/targets', json={"targets": [{"id": "x", "piece_type": "hexagon", "position": [0, 0]}]})
    assert response.status_code == 400
    assert response.get_json()['success'] is False

    assert client.put('/targets', json={"targets": "nope"}).status_code == 400

    duplicate = {"id": "t", "piece_type": "square", "position": [0, 0]}
    assert client.put('/targets', json={"targets": [duplicate, duplicate]}).status_code == 400

    print("✓")


def test_post_frame(client):
    """Test 3: A frame with a square calibrates and reports the piece."""
    print("Test 3: Frame...", end=" ")

    response = client.post('/frames', json=SQUARE_FRAME)
    assert response.status_code == 200

    report = response.get_json()['report']
    assert report['calibration_scale'] == pytest.approx(100.0)
    assert report['schema_version'] == "1.0"
    assert [p['id'] for p in report['pieces']] == ["square"]
    assert report['transitions'][0]['to'] == "detected"
    assert report['complete'] is False

    pieces = client.get('/pieces').get_json()['pieces']
    assert pieces[0]['id'] == "square"
    assert pieces[0]['state']['name'] == "detected"

    print("✓")


def test_post_frame_reports_skips(client):
    frame = dict(SQUARE_FRAME)
    frame["objects"] = SQUARE_FRAME["objects"] + [
        {"name": "tangram_hexagon", "pose": {"translation": [0, 0], "rotation_degrees": 0}, "vertices": []},
        {"name": "tangram_square"},
    ]
    report = client.post('/frames', json=frame).get_json()['report']

    codes = sorted(s['code'] for s in report['skipped'])
    assert codes == ["malformed_object", "unknown_piece_label"]


def test_post_frame_bad_payload(client):
    assert client.post('/frames', data="not json", content_type="text/plain").status_code == 400
    assert client.post('/frames', json=[1, 2, 3]).status_code == 400
    assert client.post('/frames', json={"objects": "nope"}).status_code == 400


def test_uncalibrated_frame(client):
    frame = {"objects": [], "timestamp": 0.0}
    report = client.post('/frames', json=frame).get_json()['report']
    assert report['pieces'] == []
    assert report['diagnostics']


def test_calibration_endpoints():
    """Test 4: Calibration read / manual set / invalidate."""
    print("Test 4: Calibration...", end=" ")

    store = InMemoryCalibrationStore()
    app = create_app({"camera_inversion": False}, store=store)
    client = app.test_client()

    data = client.get('/calibration').get_json()
    assert data['calibration'] == {'scale': None, 'camera_inversion': False}

    response = client.put('/calibration', json={"scale": 120.0, "camera_inversion": True})
    assert response.status_code == 200
    assert response.get_json()['calibration'] == {'scale': 120.0, 'camera_inversion': True}
    assert store.get_scale() == 120.0

    assert client.put('/calibration', json={"scale": -1}).status_code == 400
    assert client.put('/calibration', json={"camera_inversion": "yes"}).status_code == 400

    response = client.delete('/calibration')
    assert response.get_json()['calibration']['scale'] is None
    assert client.get('/health').get_json()['calibrated'] is False

    print("✓")


def test_post_frame_with_infinite_rotation(client):
    """Test 5: JSON Infinity / NaN rotations are skipped, not a server error."""
    body = (
        '{"objects": ['
        '{"name": "tangram_square", "pose": {"translation": [0, 0], "rotation_degrees": Infinity},'
        ' "vertices": [[0, 0], [100, 0], [100, 100], [0, 100]]},'
        '{"name": "tangram_square", "pose": {"translation": [0, 0], "rotation_degrees": NaN},'
        ' "vertices": [[0, 0], [100, 0], [100, 100], [0, 100]]},'
        '{"name": "tangram_square", "id": "ok", "pose": {"translation": [0, 0], "rotation_degrees": 0},'
        ' "vertices": [[0, 0], [100, 0], [100, 100], [0, 100]]}'
        '], "timestamp": 0.0}'
    )
    response = client.post('/frames', data=body, content_type='application/json')
    assert response.status_code == 200

    report = response.get_json()['report']
    assert [p['id'] for p in report['pieces']] == ["ok"]
    assert [(s['index'], s['code']) for s in report['skipped']] == [
        (0, "malformed_object"),
        (1, "malformed_object"),
    ]
