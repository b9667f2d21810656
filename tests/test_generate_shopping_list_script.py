import json

from scripts.generate_shopping_list import main


def test_prints_items_by_category(store_file, capsys):
    exit_code = main(["--store", str(store_file.path), "--family", "1", "--meal", "100", "--meal", "102"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Meat" in out
    assert "2 lb chicken breast" in out
    assert "2 eggs [!]" in out
    assert "✓ Olive Oil" in out


def test_json_output(store_file, capsys):
    exit_code = main(["--store", str(store_file.path), "--family", "1", "--meal", "100", "--meal", "999", "--json"])

    data = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert data["skipped"][0]["reference"] == "999"


def test_validation_error_exit_code(store_file, capsys):
    exit_code = main(["--store", str(store_file.path), "--family", "1"])

    assert exit_code == 2
    assert "mealIds must not be empty" in capsys.readouterr().err


def test_store_error_exit_code(tmp_path, capsys):
    broken = tmp_path / "broken.json"
    broken.write_text("{")

    exit_code = main(["--store", str(broken), "--family", "1", "--meal", "1"])

    assert exit_code == 1
    assert "Invalid JSON" in capsys.readouterr().err
