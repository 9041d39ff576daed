from sqlmodel import Session

from learnrail import models

from conftest import bearer, make_user, subscribe


def _subscriber(session, codec, email="goals@example.com"):
    user = make_user(session, email=email)
    subscribe(session, user)
    return user, bearer(codec, user)


def test_goal_with_milestones_tracks_progress(client, session, codec):
    _, headers = _subscriber(session, codec)
    r = client.post("/api/goals", headers=headers, json={
        "title": "Learn SQL",
        "milestones": [{"title": "Joins"}, {"title": ""}, {"title": "Indexes"}],
    })
    assert r.status_code == 201
    goal = r.json()["data"]
    assert goal["total_milestones"] == 2
    assert goal["progress_percent"] == 0.0

    detail = client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]
    first, second = detail["milestones"]
    assert [first["sort_order"], second["sort_order"]] == [0, 1]

    r = client.post(f"/api/milestones/{first['id']}/complete", headers=headers)
    assert r.json()["data"] == {"milestone_completed": True, "goal_progress": 50.0}
    r = client.post(f"/api/milestones/{first['id']}/complete", headers=headers)
    assert r.json()["message"] == "Milestone already completed"

    r = client.post(f"/api/milestones/{second['id']}/complete", headers=headers)
    assert r.json()["data"]["goal_progress"] == 100.0
    detail = client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]
    assert detail["status"] == "completed"
    assert detail["completed_at"] is not None

    r = client.post(f"/api/goals/{goal['id']}/milestones", headers=headers, json={"title": "Query plans"})
    assert r.status_code == 201
    assert r.json()["data"]["sort_order"] == 2
    assert r.json()["data"]["goal_progress"] == 66.67
    detail = client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]
    assert detail["status"] == "active"

    r = client.delete(f"/api/milestones/{r.json()['data']['id']}", headers=headers)
    assert r.json()["data"]["goal_progress"] == 100.0


def test_reorder_milestones(client, session, codec):
    _, headers = _subscriber(session, codec)
    goal = client.post("/api/goals", headers=headers, json={
        "title": "Run a marathon", "milestones": [{"title": "5k"}, {"title": "10k"}, {"title": "Half"}],
    }).json()["data"]
    ids = [m["id"] for m in client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]["milestones"]]

    r = client.put(f"/api/goals/{goal['id']}/milestones/reorder", headers=headers, json={"order": ids[::-1]})
    assert r.status_code == 200
    ordered = client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]["milestones"]
    assert [m["id"] for m in ordered] == ids[::-1]


def test_goal_update_checkin_and_delete(client, engine, session, codec):
    user, headers = _subscriber(session, codec)
    goal = client.post("/api/goals", headers=headers, json={"title": "Read more"}).json()["data"]

    r = client.post(f"/api/goals/{goal['id']}/checkin", headers=headers,
                    json={"note": "Two chapters", "progress_update": 40})
    assert r.status_code == 200
    assert client.get(f"/api/goals/{goal['id']}", headers=headers).json()["data"]["progress_percent"] == 40.0

    assert client.put(f"/api/goals/{goal['id']}", headers=headers, json={}).status_code == 400
    r = client.put(f"/api/goals/{goal['id']}", headers=headers, json={"status": "completed"})
    assert r.json()["data"]["status"] == "completed"
    assert r.json()["data"]["progress_percent"] == 100.0
    assert client.put(f"/api/goals/{goal['id']}", headers=headers, json={"status": "done"}).status_code == 422

    with Session(engine) as s:
        # created 5 + check-in 3 + completed 50
        assert s.get(models.User, user.id).total_points == 58

    assert client.delete(f"/api/goals/{goal['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/goals/{goal['id']}", headers=headers).status_code == 404


def test_goals_are_private_to_their_owner(client, session, codec):
    _, owner = _subscriber(session, codec)
    _, other = _subscriber(session, codec, email="other@example.com")
    goal = client.post("/api/goals", headers=owner, json={
        "title": "Secret plan", "milestones": [{"title": "Step one"}],
    }).json()["data"]
    milestone_id = client.get(f"/api/goals/{goal['id']}", headers=owner).json()["data"]["milestones"][0]["id"]

    assert client.get(f"/api/goals/{goal['id']}", headers=other).status_code == 404
    assert client.post(f"/api/milestones/{milestone_id}/complete", headers=other).status_code == 404
    assert client.get("/api/goals", headers=other).json()["meta"]["total"] == 0


def test_goal_with_milestones_keeps_derived_status(client, session, codec):
    _, headers = _subscriber(session, codec)
    goal = client.post("/api/goals", headers=headers, json={
        "title": "Ship a side project", "milestones": [{"title": "Prototype"}, {"title": "Launch"}],
    }).json()["data"]
    url = f"/api/goals/{goal['id']}"

    r = client.put(url, headers=headers, json={"status": "completed", "progress_percent": 100})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "active"
    assert r.json()["data"]["progress_percent"] == 0.0

    r = client.put(url, headers=headers, json={"status": "paused"})
    assert r.json()["data"]["status"] == "paused"
    r = client.put(url, headers=headers, json={"status": "active"})
    assert r.json()["data"]["status"] == "active"

    milestones = client.get(url, headers=headers).json()["data"]["milestones"]
    for m in milestones:
        client.post(f"/api/milestones/{m['id']}/complete", headers=headers)
    r = client.put(url, headers=headers, json={"status": "abandoned"})
    assert r.json()["data"]["status"] == "completed"
    assert r.json()["data"]["progress_percent"] == 100.0
