import pytest
from fastapi.testclient import TestClient

from marketplace.core.database import get_db
from marketplace.main import app

FUTURE = "2030-06-01T00:00:00Z"


@pytest.fixture
def http(client):
    # 以測試用的 client 取代全域的資料庫連線；不進入 lifespan
    app.dependency_overrides[get_db] = lambda: client
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(http, name, role="client", **extra):
    body = {"name": name, "email": f"{name.lower()}@example.com", "password": "secret", "role": role}
    body.update(extra)
    response = http.post("/api/auth/signup", json=body)
    assert response.status_code == 201, response.json()
    login = http.post("/api/auth/login", json={"email": body["email"], "password": "secret"})
    assert login.status_code == 200
    token = login.json()["data"]["token"]
    return response.json()["data"], {"Authorization": f"Bearer {token}"}


def create_project(http, headers, **extra):
    body = {
        "title": "Build an API",
        "description": "REST backend",
        "category": "web",
        "budget_min": 500,
        "budget_max": 1500,
        "deadline": FUTURE,
        "required_skills": ["python"],
    }
    body.update(extra)
    response = http.post("/api/projects", json=body, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def propose(http, headers, project_id, price=1200):
    response = http.post(
        f"/api/projects/{project_id}/proposals",
        json={"cover_letter": "I can do it", "proposed_price": price, "estimated_duration": 14},
        headers=headers,
    )
    return response


def test_root(http):
    response = http.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "success"


def test_signup_and_login(http):
    response = http.post(
        "/api/auth/signup",
        json={"name": "Alice", "email": "alice@example.com", "password": "secret"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["data"]["role"] == "client"
    assert "password" not in body["data"]

    duplicate = http.post(
        "/api/auth/signup",
        json={"name": "Alice", "email": "alice@example.com", "password": "other"},
    )
    assert duplicate.status_code == 400
    assert duplicate.json() == {"success": False, "data": None, "error": "EMAIL_ALREADY_EXISTS"}

    wrong = http.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["error"] == "INVALID_CREDENTIALS"

    login = http.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret"})
    assert login.status_code == 200
    data = login.json()["data"]
    assert data["token"]
    assert data["user"] == {
        "id": body["data"]["id"],
        "name": "Alice",
        "email": "alice@example.com",
        "role": "client",
    }


def test_invalid_request_body(http):
    response = http.post("/api/auth/signup", json={"name": "X", "email": "not-an-email", "password": "p"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


def test_authentication_required(http):
    assert http.get("/api/services").json()["error"] == "UNAUTHORIZED"
    response = http.get("/api/services", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"


def test_unknown_route_uses_envelope(http):
    response = http.get("/api/nothing")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_services(http):
    _, client_headers = register(http, "Alice")
    _, freelancer_headers = register(http, "Bob", role="freelancer")

    body = {
        "title": "Logo design",
        "description": "Vector logo",
        "category": "design",
        "pricing_type": "fixed",
        "price": 150,
        "delivery_days": 3,
    }
    forbidden = http.post("/api/services", json=body, headers=client_headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "FORBIDDEN"

    created = http.post("/api/services", json=body, headers=freelancer_headers)
    assert created.status_code == 201
    assert created.json()["data"]["rating"] == 0
    http.post(
        "/api/services",
        json=dict(body, title="API work", category="web", pricing_type="hourly", price=50),
        headers=freelancer_headers,
    )

    invalid = http.post("/api/services", json=dict(body, price=0), headers=freelancer_headers)
    assert invalid.status_code == 400

    everything = http.get("/api/services", headers=client_headers).json()["data"]
    assert len(everything) == 2
    design = http.get("/api/services?category=design", headers=client_headers).json()["data"]
    assert [service["title"] for service in design] == ["Logo design"]
    hourly = http.get("/api/services?pricing_type=hourly", headers=client_headers).json()["data"]
    assert [service["title"] for service in hourly] == ["API work"]
    cheap = http.get("/api/services?max_price=100", headers=client_headers).json()["data"]
    assert [service["price"] for service in cheap] == [50]

    bad_range = http.get("/api/services?min_price=200&max_price=100", headers=client_headers)
    assert bad_range.status_code == 400
    assert bad_range.json()["error"] == "INVALID_REQUEST"


def test_projects(http):
    _, client_headers = register(http, "Alice")
    _, freelancer_headers = register(http, "Bob", role="freelancer")

    past = http.post(
        "/api/projects",
        json={
            "title": "Old",
            "description": "d",
            "category": "web",
            "budget_min": 1,
            "budget_max": 2,
            "deadline": "2001-01-01T00:00:00Z",
        },
        headers=client_headers,
    )
    assert past.status_code == 400
    assert past.json()["error"] == "INVALID_REQUEST"

    assert http.post("/api/projects", json={}, headers=freelancer_headers).status_code in (400, 403)

    api = create_project(http, client_headers, title="API", required_skills=["Python", "FastAPI"], budget_max=900)
    scraper = create_project(http, client_headers, title="Scraper", required_skills=["python"], budget_max=3000)
    create_project(http, client_headers, title="Logo", category="design", required_skills=["illustrator"])
    assert api["status"] == "open"

    everything = http.get("/api/projects", headers=freelancer_headers).json()["data"]
    assert len(everything) == 3

    design = http.get("/api/projects?category=design", headers=freelancer_headers).json()["data"]
    assert [project["title"] for project in design] == ["Logo"]

    rich = http.get("/api/projects?min_budget=1000", headers=freelancer_headers).json()["data"]
    assert {project["title"] for project in rich} == {"Scraper", "Logo"}

    # API 兩個技能都符合，排第一；同分時預算上限高的在前
    ranked = http.get("/api/projects?skills=python,fastapi", headers=freelancer_headers).json()["data"]
    assert [project["id"] for project in ranked] == [api["id"], scraper["id"]]
    ranked = http.get("/api/projects?skills=python", headers=freelancer_headers).json()["data"]
    assert [project["id"] for project in ranked] == [scraper["id"], api["id"]]


def test_proposals(http):
    _, client_headers = register(http, "Alice")
    _, other_client_headers = register(http, "Carol")
    _, freelancer_headers = register(http, "Bob", role="freelancer")
    project = create_project(http, client_headers)

    created = propose(http, freelancer_headers, project["id"])
    assert created.status_code == 201
    assert created.json()["data"]["status"] == "pending"

    duplicate = propose(http, freelancer_headers, project["id"])
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "PROPOSAL_ALREADY_EXISTS"

    missing = propose(http, freelancer_headers, "no-such-project")
    assert missing.status_code == 404
    assert missing.json()["error"] == "PROJECT_NOT_FOUND"

    assert propose(http, client_headers, project["id"]).status_code == 403

    listed = http.get(f"/api/projects/{project['id']}/proposals", headers=client_headers)
    assert [proposal["id"] for proposal in listed.json()["data"]] == [created.json()["data"]["id"]]
    forbidden = http.get(f"/api/projects/{project['id']}/proposals", headers=other_client_headers)
    assert forbidden.status_code == 403


def test_contract_lifecycle(http):
    _, client_headers = register(http, "Alice")
    _, other_client_headers = register(http, "Carol")
    freelancer, freelancer_headers = register(http, "Bob", role="freelancer")
    _, rival_headers = register(http, "Dave", role="freelancer")

    service = http.post(
        "/api/services",
        json={
            "title": "API work",
            "description": "d",
            "category": "web",
            "pricing_type": "fixed",
            "price": 500,
            "delivery_days": 10,
        },
        headers=freelancer_headers,
    ).json()["data"]

    project = create_project(http, client_headers)
    proposal = propose(http, freelancer_headers, project["id"]).json()["data"]
    rival = propose(http, rival_headers, project["id"], price=900).json()["data"]

    milestones = {
        "milestones": [
            {"title": "Design", "amount": 400, "due_date": FUTURE},
            {"title": "Build", "description": "Implementation", "amount": 800, "due_date": FUTURE},
        ]
    }
    assert http.put(f"/api/proposals/{proposal['id']}/accept", json={"milestones": []},
                    headers=client_headers).status_code == 400
    assert http.put(f"/api/proposals/{proposal['id']}/accept", json=milestones,
                    headers=other_client_headers).status_code == 403
    assert http.put("/api/proposals/missing/accept", json=milestones,
                    headers=client_headers).json()["error"] == "PROPOSAL_NOT_FOUND"

    accepted = http.put(f"/api/proposals/{proposal['id']}/accept", json=milestones, headers=client_headers)
    assert accepted.status_code == 200
    result = accepted.json()["data"]
    assert result["proposal"]["status"] == "accepted"
    assert result["contract"]["status"] == "active"
    assert result["contract"]["total_amount"] == 1200
    assert result["contract"]["freelancer_id"] == freelancer["id"]
    assert [(m["title"], m["order_index"], m["status"]) for m in result["milestones"]] == [
        ("Design", 0, "pending"),
        ("Build", 1, "pending"),
    ]
    first, second = result["milestones"]

    again = http.put(f"/api/proposals/{proposal['id']}/accept", json=milestones, headers=client_headers)
    assert again.json()["error"] == "PROPOSAL_ALREADY_PROCESSED"
    rejected = http.put(f"/api/proposals/{rival['id']}/accept", json=milestones, headers=client_headers)
    assert rejected.json()["error"] == "PROPOSAL_ALREADY_PROCESSED"

    in_progress = http.get("/api/projects?status=in_progress", headers=client_headers).json()["data"]
    assert [p["id"] for p in in_progress] == [project["id"]]

    contracts = http.get("/api/contracts", headers=freelancer_headers).json()["data"]
    assert len(contracts) == 1
    assert [m["order_index"] for m in contracts[0]["milestones"]] == [0, 1]
    assert http.get("/api/contracts?role=freelancer", headers=client_headers).json()["data"] == []
    assert len(http.get("/api/contracts?role=client", headers=client_headers).json()["data"]) == 1
    assert http.get("/api/contracts?role=admin", headers=client_headers).status_code == 400
    assert http.get("/api/contracts", headers=rival_headers).json()["data"] == []

    # 評價要等合約完成
    early = http.post("/api/reviews", json={"contract_id": result["contract"]["id"], "rating": 5},
                      headers=client_headers)
    assert early.json()["error"] == "CONTRACT_NOT_COMPLETED"

    # 里程碑依序提交 / 核准
    out_of_order = http.put(f"/api/milestones/{second['id']}/submit", headers=freelancer_headers)
    assert out_of_order.json()["error"] == "PREVIOUS_MILESTONE_INCOMPLETE"
    assert http.put(f"/api/milestones/{first['id']}/submit", headers=client_headers).status_code == 403
    assert http.put("/api/milestones/missing/submit", headers=freelancer_headers).status_code == 404

    submitted = http.put(f"/api/milestones/{first['id']}/submit", headers=freelancer_headers)
    assert submitted.json()["data"]["status"] == "submitted"
    twice = http.put(f"/api/milestones/{first['id']}/submit", headers=freelancer_headers)
    assert twice.json()["error"] == "MILESTONE_ALREADY_SUBMITTED"

    assert http.put(f"/api/milestones/{first['id']}/approve", headers=freelancer_headers).status_code == 403
    approved = http.put(f"/api/milestones/{first['id']}/approve", headers=client_headers)
    assert approved.json()["data"]["status"] == "approved"
    assert http.put(f"/api/milestones/{first['id']}/approve",
                    headers=client_headers).json()["error"] == "MILESTONE_ALREADY_APPROVED"

    contract = http.get("/api/contracts", headers=client_headers).json()["data"][0]
    assert contract["status"] == "active"

    http.put(f"/api/milestones/{second['id']}/submit", headers=freelancer_headers)
    http.put(f"/api/milestones/{second['id']}/approve", headers=client_headers)

    contract = http.get("/api/contracts?status=completed", headers=client_headers).json()["data"][0]
    assert contract["id"] == result["contract"]["id"]
    completed = http.get("/api/projects?status=completed", headers=client_headers).json()["data"]
    assert [p["id"] for p in completed] == [project["id"]]

    # 評價
    review_body = {"contract_id": contract["id"], "rating": 4, "comment": "Great work"}
    assert http.post("/api/reviews", json=review_body, headers=rival_headers).status_code == 403
    assert http.post("/api/reviews", json=dict(review_body, rating=6),
                     headers=client_headers).status_code == 400
    assert http.post("/api/reviews", json=dict(review_body, contract_id="missing"),
                     headers=client_headers).json()["error"] == "CONTRACT_NOT_FOUND"

    review = http.post("/api/reviews", json=review_body, headers=client_headers)
    assert review.status_code == 201
    assert review.json()["data"]["reviewee_id"] == freelancer["id"]
    assert http.post("/api/reviews", json=review_body,
                     headers=client_headers).json()["error"] == "ALREADY_REVIEWED"
    back = http.post("/api/reviews", json={"contract_id": contract["id"], "rating": 5}, headers=freelancer_headers)
    assert back.status_code == 201

    # 雇主的評價會更新工作者服務的滾動平均
    services = http.get("/api/services", headers=client_headers).json()["data"]
    assert [(s["id"], s["rating"], s["total_reviews"]) for s in services] == [(service["id"], 4.0, 1)]

    summary = http.get(f"/api/reviews/users/{freelancer['id']}", headers=client_headers).json()["data"]
    assert summary["user_id"] == freelancer["id"]
    assert summary["average_rating"] == 4.0
    assert summary["total_reviews"] == 1
    assert summary["reviews"][0]["reviewer"]["name"] == "Alice"
    assert "password" not in summary["reviews"][0]["reviewer"]

    assert http.get("/api/reviews/users/missing", headers=client_headers).json()["error"] == "USER_NOT_FOUND"


def test_user_without_reviews(http):
    alice, headers = register(http, "Alice")
    summary = http.get(f"/api/reviews/users/{alice['id']}", headers=headers).json()["data"]
    assert summary == {"user_id": alice["id"], "average_rating": None, "total_reviews": 0, "reviews": []}
