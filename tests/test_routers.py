"""API tests through the FastAPI test client."""


class TestFormsApi:
    def test_save_form_returns_validation(self, client, survey_fields):
        response = client.post(
            "/api/forms", params={"user_id": "owner-1"},
            json={"title": "Survey", "fields": survey_fields},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["form"]["userId"] == "owner-1"
        assert body["form"]["id"]
        assert body["validation"]["isValid"] is True

    def test_save_form_requires_owner(self, client):
        response = client.post("/api/forms", json={"fields": []})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing user_id"

    def test_save_form_rejects_invalid_fields(self, client):
        response = client.post("/api/forms", params={"user_id": "u"}, json={"fields": [{"id": "bad id"}]})
        assert response.status_code == 422

    def test_save_form_enforces_field_limit(self, client, settings):
        fields = [{"id": f"f{i}"} for i in range(settings.max_fields + 1)]
        response = client.post("/api/forms", params={"user_id": "u"}, json={"fields": fields})
        assert response.status_code == 413

    def test_other_owner_cannot_overwrite(self, client, saved_form):
        response = client.post(
            "/api/forms", params={"user_id": "intruder"},
            json={"id": saved_form["id"], "fields": []},
        )
        assert response.status_code == 404

    def test_get_published_form(self, client, saved_form):
        response = client.get(f"/api/forms/{saved_form['id']}")
        assert response.status_code == 200
        assert [f["id"] for f in response.json()["form"]["fields"]][:2] == ["first", "last"]

    def test_unpublished_form_is_not_public(self, client):
        created = client.post("/api/forms", params={"user_id": "u"}, json={"fields": [{"id": "a"}]}).json()
        response = client.get(f"/api/forms/{created['form']['id']}")
        assert response.status_code == 403

    def test_unknown_form_is_404(self, client):
        assert client.get("/api/forms/nothere").status_code == 404
        assert client.post("/api/forms/nothere/evaluate", json={"responses": {}}).status_code == 404

    def test_evaluate_saved_form(self, client, saved_form):
        response = client.post(
            f"/api/forms/{saved_form['id']}/evaluate",
            json={"responses": {"first": "Ada", "last": "Lovelace", "age": "12"}},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["hiddenFields"] == ["employer"]
        assert data["skipTargets"] == {"age": "summary", "employer": "fullName"}
        assert data["recalledValues"] == {"fullName": "Ada Lovelace", "summary": "Hello ADA LOVELACE"}
        assert response.headers.get("x-request-id")

    def test_evaluate_inline_fields(self, client):
        response = client.post("/api/forms/evaluate", json={
            "fields": [
                {"id": "tags", "type": "checkbox"},
                {"id": "n", "answerRecall": {"enabled": True, "template": "count({{tags}})"}},
            ],
            "responses": {"tags": ["a", "b", "c"]},
        })
        assert response.status_code == 200
        assert response.json()["data"]["recalledValues"] == {"n": "3"}

    def test_evaluate_accepts_non_finite_numbers(self, client):
        response = client.post(
            "/api/forms/evaluate",
            content='{"fields": [{"id": "age", "conditionalLogic": {"action": "show", '
                    '"conditions": [{"fieldId": "age", "operator": "greater_than", "value": 18}]}}], '
                    '"responses": {"age": 1e400, "score": NaN}}',
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["hiddenFields"] == ["age"]
        assert data["finalValues"] == {"age": "inf", "score": "nan"}

    def test_validate_requires_owner(self, client, saved_form):
        form_id = saved_form["id"]
        assert client.post(f"/api/forms/{form_id}/validate").status_code == 400
        assert client.post(f"/api/forms/{form_id}/validate", params={"user_id": "x"}).status_code == 404

        response = client.post(f"/api/forms/{form_id}/validate", params={"user_id": "owner-1"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["fieldCount"] == 6
        assert data["references"]["summary"] == ["fullName"]


class TestConditionalLogicApi:
    def test_evaluate_with_next_fields(self, client, saved_form):
        response = client.post("/api/conditional-logic/evaluate", json={
            "formId": saved_form["id"],
            "responses": {"age": "12"},
            "currentFieldId": "age",
        })
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["nextFields"] == ["summary"]
        assert data["totalFields"] == 6

    def test_simulate(self, client, saved_form):
        response = client.post(
            "/api/conditional-logic/simulate", params={"user_id": "owner-1"},
            json={"formId": saved_form["id"], "responses": {"age": "12"}},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["flowPath"] == ["first", "last", "age", "summary"]
        assert data["simulationSummary"]["skipActionsCount"] == 1
        assert data["flowPathWithDetails"][2]["label"] == "Age"

    def test_validate_and_analysis(self, client, saved_form):
        validation = client.post(
            "/api/conditional-logic/validate", params={"user_id": "owner-1"},
            json={"formId": saved_form["id"]},
        ).json()["data"]
        assert validation["isValid"] is True
        assert validation["fieldsWithLogic"] == 2

        analysis = client.get(
            f"/api/conditional-logic/form/{saved_form['id']}/analysis", params={"user_id": "owner-1"},
        ).json()["data"]
        assert analysis["fieldsWithShowLogic"] == 1
        assert analysis["fieldsWithSkipLogic"] == 1

    def test_test_conditions(self, client):
        response = client.post("/api/conditional-logic/test-conditions", json={
            "conditions": [{"operator": "contains", "value": "red"}],
            "testValues": [["red", "blue"], "green"],
        })
        assert response.status_code == 200
        assert response.json()["data"]["summary"]["passedTests"] == 1

    def test_test_conditions_with_non_finite_values(self, client):
        response = client.post(
            "/api/conditional-logic/test-conditions",
            content='{"conditions": [{"operator": "greater_than", "value": -1e400}], "testValues": [1e400, 5]}',
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["testResults"][0]["testValue"] == "inf"
        assert data["testResults"][0]["conditions"][0]["value"] == "-inf"
        assert data["summary"]["passedTests"] == 0

    def test_test_conditions_rejects_unknown_operator(self, client):
        response = client.post("/api/conditional-logic/test-conditions", json={
            "conditions": [{"operator": "resembles", "value": "x"}],
            "testValues": ["x"],
        })
        assert response.status_code == 400
        assert "resembles" in response.json()["detail"]


class TestAnswerRecallApi:
    def test_process(self, client, saved_form):
        response = client.post("/api/answer-recall/process", json={
            "formId": saved_form["id"],
            "responses": {"first": "Ada", "last": "Lovelace"},
        })
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["recalledValues"]["fullName"] == "Ada Lovelace"
        assert data["dependencies"]["fullName"] == ["summary"]

    def test_process_unknown_field(self, client, saved_form):
        response = client.post("/api/answer-recall/process", json={
            "formId": saved_form["id"], "fieldId": "nope",
        })
        assert response.status_code == 404

    def test_template(self, client):
        response = client.post("/api/answer-recall/template", json={
            "template": "capitalize({{name}}) has count({{pets}}) pets",
            "responses": {"name": "ada", "pets": ["cat", "dog"]},
        })
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["processedTemplate"] == "Ada has 2 pets"
        assert data["referencedFields"] == ["name", "pets"]
        assert data["usedFunctions"] == ["capitalize", "count"]

    def test_template_unknown_function(self, client):
        response = client.post("/api/answer-recall/template", json={"template": "foobar({{x}})"})
        assert response.status_code == 400

    def test_validate(self, client, saved_form):
        response = client.post(
            "/api/answer-recall/validate", params={"user_id": "owner-1"},
            json={"formId": saved_form["id"]},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["validation"]["isValid"] is True
        assert data["analysis"]["fieldsWithAnswerRecall"] == 2
        assert data["analysis"]["templatesWithFunctions"] == 1

    def test_dependencies(self, client, saved_form):
        response = client.get(
            f"/api/answer-recall/dependencies/{saved_form['id']}/first", params={"user_id": "owner-1"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["dependencies"] == ["fullName"]
        assert data["affectedByChanges"] is True

    def test_simulate(self, client, saved_form):
        response = client.post(
            "/api/answer-recall/simulate", params={"user_id": "owner-1"},
            json={"formId": saved_form["id"], "testResponses": {"first": "Ada", "last": "Lovelace", "age": "30"}},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["finalValues"]["summary"] == "Hello ADA LOVELACE"
        details = {d["id"]: d for d in data["fieldDetails"]}
        assert details["employer"]["isVisible"] is True
        assert details["fullName"]["recalledValue"] == "Ada Lovelace"

    def test_simulate_echoes_non_finite_responses_as_text(self, client, saved_form):
        response = client.post(
            "/api/answer-recall/simulate", params={"user_id": "owner-1"},
            content='{"formId": "' + saved_form["id"] + '", "testResponses": {"age": NaN, "first": "Ada"}}',
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["testResponses"] == {"age": "nan", "first": "Ada"}
        assert data["finalValues"]["age"] == "nan"


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "store": True}
