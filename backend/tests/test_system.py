"""
Health endpoint, CORS headers and CLI command tests.
"""

from matmx.models import InventoryImportLog, Product, User


class TestHealth:
    def test_health_ok(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["users"] == 0

    def test_unknown_route_is_json_404(self, client, db_session):
        resp = client.get("/api/does-not-exist")
        assert resp.status_code == 404
        assert resp.json["code"] == "not_found"


class TestCors:
    def test_allowed_origin_echoed(self, app, client, db_session):
        origin = app.config["CORS_ORIGINS"][0]
        resp = client.get("/health", headers={"Origin": origin})
        assert resp.headers["Access-Control-Allow-Origin"] == origin
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"

    def test_foreign_origin_not_echoed(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers


class TestCli:
    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--email", "root@matmx.test"])
        assert result.exit_code == 0, result.output
        assert "Created super_admin root@matmx.test" in result.output

        result = runner.invoke(args=["system", "init", "--email", "other@matmx.test"])
        assert result.exit_code == 0, result.output
        assert "already exists" in result.output
        assert db_session.query(User).count() == 1

    def test_users_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--name", "Casey CSR",
            "--email", "casey@matmx.test",
            "--password", "Password123!",
            "--role", "CSR",
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["users", "list"])
        assert "casey@matmx.test" in result.output

    def test_users_create_rejects_weak_password(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--name", "Weak", "--email", "weak@matmx.test", "--password", "weak", "--role", "CSR",
        ])
        assert result.exit_code != 0
        assert db_session.query(User).count() == 0

    def test_users_deactivate(self, app, rep, db_session):
        result = app.test_cli_runner().invoke(args=["users", "deactivate", rep.email])
        assert result.exit_code == 0, result.output
        db_session.expire_all()
        assert db_session.get(User, rep.id).is_active is False

    def test_inventory_import_and_reorder(self, app, admin, tmp_path, db_session):
        csv_file = tmp_path / "products.csv"
        csv_file.write_text(
            "name,sku,stock,reorder_threshold\n"
            "Floor Mat,MAT-1,1,5\n"
            "Door Mat,MAT-2,bad,1\n",
            encoding="utf-8",
        )
        runner = app.test_cli_runner()

        result = runner.invoke(args=["inventory", "import", str(csv_file), "--email", admin.email])
        assert result.exit_code == 0, result.output
        assert "Imported 1 row(s), 1 failed" in result.output
        assert db_session.query(Product).count() == 1
        assert db_session.query(InventoryImportLog).one().filename == "products.csv"

        result = runner.invoke(args=["inventory", "reorder"])
        assert "MAT-1" in result.output

    def test_inventory_import_unknown_user(self, app, tmp_path, db_session):
        csv_file = tmp_path / "products.csv"
        csv_file.write_text("name,sku,stock\nMat,M-1,1\n", encoding="utf-8")
        result = app.test_cli_runner().invoke(
            args=["inventory", "import", str(csv_file), "--email", "ghost@matmx.test"]
        )
        assert result.exit_code != 0
        assert "User not found" in result.output
