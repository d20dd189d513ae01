from types import SimpleNamespace

import pytest
import requests
from openai import OpenAIError

from conftest import FakeHTTPClient, FakeResponse
from quizloop import api_utils
from quizloop.api_utils import GeminiClient, OpenAIClient, build_language_model
from quizloop.exceptions import LLMError, RenderError
from quizloop.renderer import SCRAPINGBEE_URL, PlaywrightRenderer, ScrapingBeeRenderer, build_renderer
from quizloop.settings import Settings

QUIZ_URL = "https://quiz.example.com/demo"


class TestScrapingBeeRenderer:

    def make(self, reply):
        client = FakeHTTPClient(pages={SCRAPINGBEE_URL: reply})
        return ScrapingBeeRenderer("bee-key", client=client), client

    def test_renders_with_javascript(self):
        renderer, client = self.make("<html><body>Q1</body></html>")

        assert renderer.render(QUIZ_URL) == "<html><body>Q1</body></html>"
        assert client.fetch_params == [{'api_key': "bee-key", 'url': QUIZ_URL, 'render_js': 'true'}]

    def test_error_status_raises(self):
        renderer, _ = self.make(FakeResponse(text="quota exceeded", status_code=429))
        with pytest.raises(RenderError, match="429"):
            renderer.render(QUIZ_URL)

    def test_network_failure_raises(self):
        renderer, _ = self.make(requests.ConnectionError("refused"))
        with pytest.raises(RenderError, match="refused"):
            renderer.render(QUIZ_URL)

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            ScrapingBeeRenderer("")


def test_build_renderer_backends():
    assert isinstance(build_renderer(Settings(scrapingbee_api_key="bee-key")), ScrapingBeeRenderer)
    assert isinstance(build_renderer(Settings(render_backend='playwright')), PlaywrightRenderer)
    assert build_renderer(Settings(scrapingbee_api_key=None)) is None
    assert build_renderer(Settings(render_backend='selenium')) is None
    assert build_renderer(Settings(render_backend='none')) is None


class TestGeminiClient:

    @pytest.fixture
    def posted(self, monkeypatch):
        calls = []

        def install(reply):
            def fake_post(url, json=None, headers=None, timeout=None):
                calls.append((url, json))
                if isinstance(reply, Exception):
                    raise reply
                return reply
            monkeypatch.setattr(api_utils.requests, 'post', fake_post)
            return calls

        return install

    def test_joins_candidate_parts(self, posted):
        calls = posted(FakeResponse(json_body={
            'candidates': [{'content': {'parts': [{'text': '4'}, {'text': '2'}]}}]
        }))
        model = GeminiClient(api_key="g-key", api_url="https://gemini.example.com/generate")

        assert model.complete("What is 6 * 7?", system="Be terse.") == "42"
        url, payload = calls[0]
        assert url == "https://gemini.example.com/generate?key=g-key"
        assert payload['contents'][0]['parts'][0]['text'] == "What is 6 * 7?"
        assert payload['systemInstruction'] == {'parts': [{'text': "Be terse."}]}

    def test_no_candidates_gives_empty_text(self, posted):
        posted(FakeResponse(json_body={'candidates': []}))
        assert GeminiClient(api_key="g-key").complete("Q?") == ''

    @pytest.mark.parametrize("reply", [
        FakeResponse(json_body={'error': 'bad key'}, status_code=403),
        FakeResponse(text="<html>gateway</html>"),
        requests.Timeout("timed out"),
    ])
    def test_failures_become_llm_errors(self, posted, reply):
        posted(reply)
        with pytest.raises(LLMError):
            GeminiClient(api_key="g-key").complete("Q?")

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            GeminiClient(api_key=None)


class TestOpenAIClient:

    def make(self, create):
        model = OpenAIClient(api_key="sk-test", model="gpt-test")
        model.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return model

    @staticmethod
    def reply(*contents):
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=c)) for c in contents])

    def test_returns_first_choice(self):
        requests_seen = []

        def create(model, messages):
            requests_seen.append((model, messages))
            return self.reply("42", "ignored")

        assert self.make(create).complete("What is 6 * 7?", system="Be terse.") == "42"
        assert requests_seen == [("gpt-test", [
            {'role': 'system', 'content': "Be terse."},
            {'role': 'user', 'content': "What is 6 * 7?"},
        ])]

    @pytest.mark.parametrize("response", [
        SimpleNamespace(choices=[]),
        SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))]),
    ])
    def test_empty_reply(self, response):
        assert self.make(lambda model, messages: response).complete("Q?") == ''

    def test_sdk_error_becomes_llm_error(self):
        def create(model, messages):
            raise OpenAIError("rate limited")

        with pytest.raises(LLMError, match="rate limited"):
            self.make(create).complete("Q?")


def test_build_language_model_providers():
    assert isinstance(build_language_model(Settings(openai_api_key="sk-test")), OpenAIClient)
    assert isinstance(build_language_model(Settings(llm_provider='gemini', gemini_api_key="g-key")),
                      GeminiClient)
    assert build_language_model(Settings(openai_api_key=None)) is None
    assert build_language_model(Settings(llm_provider='gemini')) is None
    assert build_language_model(Settings(llm_provider='claude')) is None
    assert build_language_model(Settings(llm_provider='none')) is None
