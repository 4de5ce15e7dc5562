"""Integration tests for CLI."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from foodrun.document_store import JsonDocumentStore
from foodrun.identity import verify_password
from foodrun.lifecycle import OrderLifecycleManager
from foodrun.models import Customer, OrderStatus, Restaurant


def run_foodrun(args: list[str], data_dir: Path, env: dict | None = None) -> subprocess.CompletedProcess:
    """Run foodrun CLI command against a data directory."""
    return subprocess.run(
        [sys.executable, "-m", "foodrun.cli", "--data-dir", str(data_dir)] + args,
        env={**os.environ, **(env or {})},
        capture_output=True,
        text=True,
        timeout=60,
    )


@pytest.fixture
def seeded(temp_dir, place_order):
    """Two orders on disk: one placed, one cooking."""
    manager = OrderLifecycleManager(JsonDocumentStore(temp_dir))
    customer = Customer(uid="cust-1", name="Asha")
    placed = place_order(manager, customer)
    cooking = place_order(manager, customer)
    manager.accept_order(cooking.id, Restaurant(uid="r1", name="Burger King"))
    return {"placed": placed, "cooking": cooking}


class TestOrdersCommands:
    def test_list_empty(self, temp_dir):
        result = run_foodrun(["orders", "list"], temp_dir)
        assert result.returncode == 0
        assert "No orders." in result.stdout

    def test_list(self, temp_dir, seeded):
        result = run_foodrun(["orders", "list"], temp_dir)
        assert result.returncode == 0
        lines = result.stdout.strip().splitlines()
        assert len(lines) == 2
        assert seeded["cooking"].id[:8] in lines[0]
        assert "total=355.00" in lines[1]

    def test_list_status_json(self, temp_dir, seeded):
        result = run_foodrun(["orders", "list", "--status", "cooking", "--json"], temp_dir)
        assert result.returncode == 0
        data = json.loads(result.stdout)
        assert [o["id"] for o in data] == [seeded["cooking"].id]
        assert data[0]["status"] == OrderStatus.COOKING

    def test_show(self, temp_dir, seeded):
        result = run_foodrun(["orders", "show", seeded["placed"].id], temp_dir)
        assert result.returncode == 0
        assert "Status:     placed" in result.stdout
        assert "Total 355.00" in result.stdout

    def test_show_missing(self, temp_dir):
        result = run_foodrun(["orders", "show", "missing"], temp_dir)
        assert result.returncode == 1
        assert "Order not found" in result.stderr

    def test_corrupt_store(self, temp_dir):
        (temp_dir / "documents.json").write_text("{broken")
        result = run_foodrun(["orders", "list"], temp_dir)
        assert result.returncode == 1
        assert "document store unavailable" in result.stderr


class TestPartnersCommands:
    def test_add_and_list(self, temp_dir):
        result = run_foodrun(
            ["partners", "add", "burger", "restaurant", "-n", "Burger King", "-p", "pw", "-r", "1"],
            temp_dir,
        )
        assert result.returncode == 0
        assert "Added restaurant partner: burger" in result.stdout

        result = run_foodrun(["partners", "list", "--json"], temp_dir)
        data = json.loads(result.stdout)
        assert data[0]["username"] == "burger"
        assert data[0]["restaurant_id"] == "1"
        assert "password_hash" not in data[0]

        partners = JsonDocumentStore(temp_dir).query("partners")
        assert verify_password("pw", partners[0]["passwordHash"])

    def test_add_duplicate(self, temp_dir):
        run_foodrun(["partners", "add", "ravi", "driver", "-p", "pw"], temp_dir)
        result = run_foodrun(["partners", "add", "ravi", "driver", "-p", "pw"], temp_dir)
        assert result.returncode == 1
        assert "already exists" in result.stderr

    def test_list_empty(self, temp_dir):
        result = run_foodrun(["partners", "list", "--role", "driver"], temp_dir)
        assert result.returncode == 0
        assert "No partners." in result.stdout


class TestWatchCommand:
    def test_watch_available_jobs(self, temp_dir, seeded):
        result = run_foodrun(["watch", "--available", "--count", "1"], temp_dir)
        assert result.returncode == 0
        assert "--- 1 order(s)" in result.stdout
        assert seeded["cooking"].id[:8] in result.stdout

    def test_watch_customer(self, temp_dir, seeded):
        result = run_foodrun(["watch", "--customer", "cust-1", "--count", "1"], temp_dir)
        assert result.returncode == 0
        assert "--- 2 order(s)" in result.stdout


class TestMiscCommands:
    def test_hash_password(self, temp_dir):
        result = run_foodrun(["hash-password", "-p", "admin-pass"], temp_dir)
        assert result.returncode == 0
        assert verify_password("admin-pass", result.stdout.strip())

    def test_hash_password_too_long(self, temp_dir):
        result = run_foodrun(["hash-password", "-p", "x" * 73], temp_dir)
        assert result.returncode == 1
        assert "Error: password longer than 72 bytes" in result.stderr
        assert "Traceback" not in result.stderr

    def test_non_finite_setting(self, temp_dir):
        result = run_foodrun(["orders", "list"], temp_dir, env={"FOODRUN_DELIVERY_FEE": "NaN"})
        assert result.returncode == 1
        assert "FOODRUN_DELIVERY_FEE" in result.stderr
        assert "Traceback" not in result.stderr

    def test_version(self, temp_dir):
        result = run_foodrun(["--version"], temp_dir)
        assert result.returncode == 0
        assert "foodrun" in result.stdout

    def test_no_command_prints_help(self, temp_dir):
        result = run_foodrun([], temp_dir)
        assert result.returncode == 0
        assert "usage" in result.stdout.lower()
