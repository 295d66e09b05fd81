import json
import pytest
import vectorlink


def test_defaults(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))

    settings = vectorlink.config.load()

    assert settings.address == '127.0.0.1'
    assert settings.port == 1865
    assert settings.ack_timeout == 1.0
    assert settings.timeout == 60.0
    assert settings.secure is False
    assert settings.endpoint == 'tcp://127.0.0.1:1865'


def test_directory(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))
    assert vectorlink.config.directory() == str(tmp_path)
    assert vectorlink.home() == str(tmp_path)

    monkeypatch.delenv('VECTORLINK_HOME')
    monkeypatch.setenv('HOME', str(tmp_path))
    assert vectorlink.config.directory() == str(tmp_path / '.vectorlink')


def test_layers(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))

    contents = {'address': 'engine.example.com', 'port': 2000, 'timeout': 5, 'unrelated': True}
    (tmp_path / 'client.json').write_text(json.dumps(contents))

    settings = vectorlink.config.load()
    assert settings.address == 'engine.example.com'
    assert settings.port == 2000
    assert settings.timeout == 5

    # The environment overrides the file, and keyword arguments override
    # the environment; a keyword argument of None is ignored.

    monkeypatch.setenv('VECTORLINK_PORT', '3000')
    monkeypatch.setenv('VECTORLINK_ACK_TIMEOUT', '0.25')

    settings = vectorlink.config.load()
    assert settings.port == 3000
    assert settings.ack_timeout == 0.25

    settings = vectorlink.config.load(port=4000, address=None)
    assert settings.port == 4000
    assert settings.address == 'engine.example.com'


def test_bad_environment(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))
    monkeypatch.setenv('VECTORLINK_SECURE', 'perhaps')

    with pytest.raises(ValueError):
        vectorlink.config.load()


def test_secure_requires_key(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))
    monkeypatch.setenv('VECTORLINK_SECURE', 'yes')

    with pytest.raises(ValueError):
        vectorlink.config.load()

    settings = vectorlink.config.load(server_key='x' * 40)
    assert settings.secure is True


def test_read_only():

    settings = vectorlink.config.Settings(port=1)

    with pytest.raises(AttributeError):
        settings.port = 2

    with pytest.raises(TypeError):
        vectorlink.config.Settings(bogus=True)


def test_cached(monkeypatch, tmp_path):

    monkeypatch.setenv('VECTORLINK_HOME', str(tmp_path))
    vectorlink.config.clear()

    try:
        first = vectorlink.config.get()
        assert vectorlink.config.get() is first

        vectorlink.config.clear()
        assert vectorlink.config.get() is not first
    finally:
        vectorlink.config.clear()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
