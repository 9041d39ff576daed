import pytest

from learnrail.tokens import InvalidToken, TokenCodec, is_refresh

SECRET = "test-secret-with-enough-length-for-hs256"


class Clock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


def _flip(segment: str) -> str:
    mid = len(segment) // 2
    ch = "A" if segment[mid] != "A" else "B"
    return segment[:mid] + ch + segment[mid + 1:]


def test_issue_and_verify_round_trip():
    clock = Clock()
    codec = TokenCodec(SECRET, clock=clock)
    token = codec.issue({"user_id": 7, "role": "user"}, 60)
    assert token.count(".") == 2
    claims = codec.verify(token)
    assert claims["user_id"] == 7
    assert claims["iat"] == clock.now
    assert claims["exp"] == clock.now + 60


def test_expired_token_is_rejected():
    clock = Clock()
    codec = TokenCodec(SECRET, clock=clock)
    token = codec.issue({"user_id": 1}, 60)
    clock.now += 60
    assert codec.verify(token)["user_id"] == 1
    clock.now += 1
    with pytest.raises(InvalidToken):
        codec.verify(token)


@pytest.mark.parametrize("part", [1, 2])
def test_tampered_token_is_rejected(part):
    codec = TokenCodec(SECRET)
    segments = codec.issue({"user_id": 1}, 60).split(".")
    segments[part] = _flip(segments[part])
    with pytest.raises(InvalidToken):
        codec.verify(".".join(segments))


def test_wrong_secret_is_rejected():
    token = TokenCodec(SECRET).issue({"user_id": 1}, 60)
    with pytest.raises(InvalidToken):
        TokenCodec(SECRET + "x").verify(token)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "not.a.jwt"])
def test_malformed_tokens_are_rejected(token):
    with pytest.raises(InvalidToken):
        TokenCodec(SECRET).verify(token)


def test_refresh_tokens_are_marked():
    codec = TokenCodec(SECRET)
    access = codec.verify(codec.issue_access(3, "admin", 60))
    refresh = codec.verify(codec.issue_refresh(3, 60))
    assert access["role"] == "admin"
    assert not is_refresh(access)
    assert is_refresh(refresh)
    assert refresh["user_id"] == 3
