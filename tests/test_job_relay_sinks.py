# tests/test_job_relay_sinks.py
import pytest
import requests

from modules.job_relay.lib import render
from modules.job_relay.lib.config import TrelloCredentials
from modules.job_relay.lib.http_client import HttpClient, classify_response, scrub_url_secrets
from modules.job_relay.lib.models import (
    BudgetCategory,
    DeliveryOutcome,
    DeliveryResult,
    JobRecord,
    NotificationTask,
    Priority,
)
from modules.job_relay.lib.sinks import SinkError, SlackWebhook, TrelloBoard

RECORD = JobRecord(
    id="j1",
    title="Build ETL",
    summary="Move CSVs into Postgres",
    url="https://www.upwork.com/jobs/~j1",
    budget=1200,
    client_verified=True,
    client_spent=3400.5,
)


def _response(status, body=b"", headers=None):
    r = requests.Response()
    r.status_code = status
    r._content = body
    r.headers.update(headers or {})
    return r


class FakeClient:
    """Stands in for HttpClient: records writes, serves canned GET payloads."""

    def __init__(self, get_payloads=None, send_results=None):
        self.get_payloads = dict(get_payloads or {})
        self.send_results = list(send_results or [])
        self.sent = []
        self.gets = []
        self.closed = False

    def get_json(self, url, *, params=None, timeout=None):
        self.gets.append((url, params))
        payload = self.get_payloads.get(url)
        if isinstance(payload, Exception):
            raise payload
        return payload

    def send(self, method, url, **kwargs):
        self.sent.append((method, url, kwargs))
        if self.send_results:
            return self.send_results.pop(0)
        return DeliveryResult.delivered(200, payload={"id": f"new-{len(self.sent)}"})

    def close(self):
        self.closed = True


CREDS = TrelloCredentials(api_key="k123", token="t456", board_id="B1")


# ----------------------------------------------------------------------
# HTTP classification
# ----------------------------------------------------------------------
def test_classify_2xx_is_delivered_with_payload():
    res = classify_response(_response(200, b'{"id": "c1"}'))
    assert res.ok and res.payload == {"id": "c1"}
    assert classify_response(_response(200, b"ok")).payload == "ok"


def test_classify_429_is_rate_limited():
    res = classify_response(_response(429, b"slow down", {"Retry-After": "3"}))
    assert res.outcome is DeliveryOutcome.RATE_LIMITED
    assert res.status_code == 429
    assert not res.ok


def test_classify_other_status_is_failed():
    res = classify_response(_response(500, b"internal\nerror"))
    assert res.outcome is DeliveryOutcome.FAILED
    assert res.status_code == 500
    assert res.error == "HTTP 500: internal error"


def test_send_transport_error_is_failed_and_scrubbed(monkeypatch):
    client = HttpClient(retries=0)

    def boom(method, url, **kwargs):
        raise requests.ConnectionError(f"cannot reach {url}")

    monkeypatch.setattr(client.session, "request", boom)
    res = client.send("PUT", "https://api.trello.com/1/cards/c1?key=k123&token=t456")
    assert res.outcome is DeliveryOutcome.FAILED
    assert "k123" not in res.error and "t456" not in res.error


def test_scrub_url_secrets():
    assert scrub_url_secrets("GET /1/boards?key=abc&token=def&fields=id") == "GET /1/boards?key=***&token=***&fields=id"


# ----------------------------------------------------------------------
# Trello
# ----------------------------------------------------------------------
def test_initialize_reuses_named_lists_creates_missing_and_orders():
    client = FakeClient(
        get_payloads={
            "https://api.trello.com/1/boards/B1/lists": [
                {"id": "L-high", "name": "High Value", "pos": 1},
                {"id": "L-quick", "name": "quick wins", "pos": 2},
            ]
        }
    )
    board = TrelloBoard(CREDS, client=client)
    board.initialize()

    assert board.list_ids[BudgetCategory.QUICK_WINS] == "L-quick"
    assert board.list_ids[BudgetCategory.HIGH_VALUE] == "L-high"
    posts = [s for s in client.sent if s[0] == "POST"]
    assert len(posts) == 1
    assert posts[0][2]["json"] == {"name": "Medium Projects", "idBoard": "B1", "pos": "bottom"}
    assert posts[0][2]["params"] == {"key": "k123", "token": "t456"}

    puts = [(url.rsplit("/", 1)[-1], kw["json"]["pos"]) for m, url, kw in client.sent if m == "PUT"]
    assert puts == [("L-quick", 1), (board.list_ids[BudgetCategory.MEDIUM_PROJECTS], 2), ("L-high", 3)]


def test_initialize_skips_reorder_when_already_sorted():
    creds = TrelloCredentials(
        api_key="k",
        token="t",
        board_id="B1",
        list_ids={
            BudgetCategory.QUICK_WINS: "L1",
            BudgetCategory.MEDIUM_PROJECTS: "L2",
            BudgetCategory.HIGH_VALUE: "L3",
        },
    )
    client = FakeClient(
        get_payloads={
            "https://api.trello.com/1/boards/B1/lists": [
                {"id": "L1", "name": "a", "pos": 10},
                {"id": "L2", "name": "b", "pos": 20},
                {"id": "L3", "name": "c", "pos": 30},
            ]
        }
    )
    TrelloBoard(creds, client=client).initialize()
    assert client.sent == []


def test_initialize_raises_when_list_cannot_be_created():
    client = FakeClient(
        get_payloads={"https://api.trello.com/1/boards/B1/lists": []},
        send_results=[DeliveryResult.failed("HTTP 401: invalid token", status_code=401)],
    )
    with pytest.raises(SinkError):
        TrelloBoard(CREDS, client=client).initialize()


def test_create_card_posts_to_category_list():
    creds = TrelloCredentials(api_key="k", token="t", board_id="B1", list_ids={BudgetCategory.MEDIUM_PROJECTS: "L2"})
    client = FakeClient()
    res = TrelloBoard(creds, client=client).create_card(RECORD, BudgetCategory.MEDIUM_PROJECTS, Priority.HIGH)

    assert res.ok
    method, url, kw = client.sent[0]
    assert (method, url) == ("POST", "https://api.trello.com/1/cards")
    assert kw["json"]["idList"] == "L2"
    assert kw["json"]["name"] == "[HIGH] Build ETL"
    assert kw["json"]["pos"] == "top"


def test_create_card_without_list_fails_without_calling_api():
    client = FakeClient()
    res = TrelloBoard(CREDS, client=client).create_card(RECORD, BudgetCategory.HIGH_VALUE, Priority.LOW)
    assert res.outcome is DeliveryOutcome.FAILED
    assert client.sent == []


def test_list_cards_and_close_card():
    client = FakeClient(
        get_payloads={"https://api.trello.com/1/boards/B1/cards": [{"id": "c1"}, "junk", {"id": "c2"}]}
    )
    board = TrelloBoard(CREDS, client=client)

    assert [c["id"] for c in board.list_cards()] == ["c1", "c2"]
    assert client.gets[0][1]["fields"] == "id,name,closed,dateLastActivity"

    assert board.close_card("c1").ok
    assert client.sent[-1][1] == "https://api.trello.com/1/cards/c1"
    assert client.sent[-1][2]["json"] == {"closed": True}


def test_list_cards_failure_raises_sink_error_without_secrets():
    url = "https://api.trello.com/1/boards/B1/cards"
    client = FakeClient(get_payloads={url: requests.HTTPError(f"401 for url: {url}?key=k123&token=t456")})
    with pytest.raises(SinkError) as ei:
        TrelloBoard(CREDS, client=client).list_cards()
    assert "t456" not in str(ei.value)


def test_sinks_close_their_http_client():
    trello_client, slack_client = FakeClient(), FakeClient()
    TrelloBoard(CREDS, client=trello_client).close()
    SlackWebhook("https://hooks.slack.com/services/T/B/X", client=slack_client).close()
    assert trello_client.closed and slack_client.closed


# ----------------------------------------------------------------------
# Slack + rendering
# ----------------------------------------------------------------------
def test_slack_posts_block_kit_payload():
    client = FakeClient(send_results=[DeliveryResult.rate_limited()])
    hook = SlackWebhook("https://hooks.slack.com/services/T/B/X", client=client)

    res = hook.post(NotificationTask(RECORD, BudgetCategory.MEDIUM_PROJECTS, Priority.HIGH))

    assert res.outcome is DeliveryOutcome.RATE_LIMITED
    method, url, kw = client.sent[0]
    assert (method, url) == ("POST", "https://hooks.slack.com/services/T/B/X")
    assert kw["json"]["blocks"][0]["type"] == "header"


def test_card_payload_description():
    desc = render.card_payload(RECORD, BudgetCategory.MEDIUM_PROJECTS, Priority.HIGH)["desc"]
    assert desc.startswith("Move CSVs into Postgres")
    assert "Payment Verified" in desc
    assert "Budget: $1200" in desc
    assert "Client Spent: $3400.50" in desc
    assert "[Apply Here](https://www.upwork.com/jobs/~j1)" in desc


def test_chat_message_fields_and_button():
    msg = render.chat_message(RECORD, BudgetCategory.HIGH_VALUE, Priority.LOW)
    header = msg["blocks"][0]["text"]["text"]
    assert header.endswith("New Job Opportunity!")
    fields = [f["text"] for f in msg["blocks"][2]["fields"]]
    assert fields == [
        "*Budget:*\n$1200",
        "*Client Status:*\n✅ Verified",
        "*Client Spent:*\n$3400.50",
        "*Category:*\nHigh Value",
    ]
    assert msg["blocks"][-1]["elements"][0]["url"] == RECORD.url


def test_chat_message_without_budget_or_url():
    rec = JobRecord(id="j2", title="Quick question")
    msg = render.chat_message(rec, BudgetCategory.QUICK_WINS, Priority.LOW)
    assert "*Budget:*\nNot specified" in [f["text"] for f in msg["blocks"][2]["fields"]]
    assert all(b["type"] != "actions" for b in msg["blocks"])
    assert "⚠️ Not Verified" in msg["blocks"][2]["fields"][1]["text"]
