import json

from admin_reports.profiles import ProfileStore, TenantProfile, resolve_profile


def profile(name, **kwargs):
    return TenantProfile(name=name, tenant_id=f"{name}-tenant", client_id=f"{name}-app", **kwargs)


def test_first_profile_becomes_default(tmp_path):
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(profile("contoso"))
    store.add(profile("fabrikam", ad_server="dc01.fabrikam.local"))

    reloaded = ProfileStore.load(path)
    assert reloaded.default_profile == "contoso"
    assert reloaded.get("FABRIKAM").ad_server == "dc01.fabrikam.local"
    assert [p.name for p in reloaded.list_profiles()] == ["contoso", "fabrikam"]
    assert resolve_profile(path=path).name == "contoso"
    assert resolve_profile("fabrikam", path=path).tenant_id == "fabrikam-tenant"
    assert resolve_profile("missing", path=path) is None


def test_remove_moves_default(tmp_path):
    path = tmp_path / "profiles.json"
    store = ProfileStore.load(path)
    store.add(profile("a"))
    store.add(profile("b"))

    assert store.remove("a")
    assert not store.remove("a")
    assert ProfileStore.load(path).default_profile == "b"
    assert store.set_default("b")
    assert not store.set_default("zzz")


def test_unreadable_file_gives_empty_store(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(json.dumps({"profiles": {"x": {"tenant_id": "t"}}}), encoding="utf-8")
    store = ProfileStore.load(path)
    assert store.profiles == {}
    assert store.get_default() is None


def test_resolve_cert_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert profile("a", cert_path="certs/app.pfx").resolve_cert_path() == str(tmp_path / "certs" / "app.pfx")
