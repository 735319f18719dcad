from tts_gateway.services.password_gate import PasswordGate


def test_gate_without_secret() -> None:
    gate = PasswordGate(None)

    assert gate.check_required() is False
    assert gate.verify("") is False
    assert gate.verify("anything") is False


def test_gate_with_secret() -> None:
    gate = PasswordGate("s3cret")

    assert gate.check_required() is True
    assert gate.verify("s3cret") is True
    assert gate.verify("s3cret ") is False
    assert gate.verify("") is False


def test_gate_handles_non_ascii_secrets() -> None:
    gate = PasswordGate("密码")

    assert gate.verify("密码") is True
    assert gate.verify("密") is False
