from notebooklm_rpc.auth_cli import export_cookies, read_cookie_file, run_file_cookie_entry, show_tokens

from conftest import COOKIES, make_record

COOKIE_HEADER = "; ".join(f"{k}={v}" for k, v in COOKIES.items())


def test_read_cookie_file_skips_comments(tmp_path):
    path = tmp_path / "cookies.txt"
    path.write_text(f"# paste the cookie header below\n{COOKIE_HEADER}\n")
    assert read_cookie_file(path) == COOKIES


def test_file_import_saves_record(tmp_path, store):
    path = tmp_path / "cookies.txt"
    path.write_text(COOKIE_HEADER)

    record = run_file_cookie_entry(store, str(path))

    assert record.cookies == COOKIES
    assert store.load().cookies == COOKIES


def test_file_import_rejects_missing_cookies(tmp_path, store, capsys):
    path = tmp_path / "cookies.txt"
    path.write_text("SID=only")

    assert run_file_cookie_entry(store, str(path)) is None
    assert "HSID" in capsys.readouterr().out
    assert store.load() is None


def test_file_import_missing_file(tmp_path, store):
    assert run_file_cookie_entry(store, str(tmp_path / "nope.txt")) is None


def test_show_tokens_hides_secrets(store, capsys):
    store.save(make_record(csrf_token="very-secret-csrf"))

    assert show_tokens(store) == 0
    out = capsys.readouterr().out
    assert "CSRF token: present" in out
    assert "very-secret-csrf" not in out
    assert "sid-value" not in out


def test_export_cookies(tmp_path, store):
    store.save(make_record())
    destination = tmp_path / "exported.txt"

    assert export_cookies(store, str(destination)) == 0
    assert destination.read_text() == COOKIE_HEADER


def test_export_without_cache(tmp_path, store):
    assert export_cookies(store, str(tmp_path / "out.txt")) == 1


def test_read_cookie_file_one_cookie_per_line(tmp_path):
    path = tmp_path / "cookies.txt"
    path.write_text("# exported\n" + "\n".join(f"{k}={v}" for k, v in COOKIES.items()) + "\n")
    assert read_cookie_file(path) == COOKIES
