import json
from unittest.mock import Mock, patch

import pytest
import requests

from envkeeper.advisory import (
    AdvisoryClient, command_binaries, command_fits_system, fallback_diagnosis,
    filter_dependencies, parse_json_response, strip_markdown_fences,
)
from envkeeper.errors import AdvisoryServiceError, IncompatiblePlanError
from envkeeper.models import Dependency


def completion(content, status_code=200):
    response = Mock(status_code=status_code, text=json.dumps(content) if not isinstance(content, str) else content)
    response.json.return_value = {'choices': [{'message': {'content': content}}]}
    return response


GIT_PLAN = {
    'type': 'single',
    'analysis': 'Git is a version control system.',
    'dependencies': [{
        'name': 'git',
        'display_name': 'Git',
        'category': 'tool',
        'install_commands': ['winget install --id Git.Git -e', 'sudo apt-get install -y git',
                             'choco install git -y'],
        'verify_command': 'git --version',
        'expected_pattern': 'git version',
    }],
}


@pytest.mark.unit
class TestResponseParsing:

    def test_strip_fences(self):
        assert strip_markdown_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_markdown_fences('```\n{"a": 1}\n```\n') == '{"a": 1}'
        assert strip_markdown_fences('{"a": 1}') == '{"a": 1}'

    def test_parse_fenced_json(self):
        assert parse_json_response('```json\n{"type": "single"}\n```') == {'type': 'single'}

    def test_invalid_json(self):
        with pytest.raises(AdvisoryServiceError) as exc_info:
            parse_json_response('Sure! Here is your plan.')
        assert exc_info.value.raw == 'Sure! Here is your plan.'

    def test_non_object(self):
        with pytest.raises(AdvisoryServiceError, match='not a JSON object'):
            parse_json_response('[1, 2]')


@pytest.mark.unit
class TestPlatformFiltering:

    def test_command_binaries(self):
        assert command_binaries('sudo apt-get install -y git') == ['apt-get']
        assert command_binaries('DEBIAN_FRONTEND=noninteractive apt install -y jq') == ['apt']
        assert command_binaries('curl -fsSL https://x.sh | sh') == ['curl', 'sh']
        assert command_binaries('/usr/bin/brew install jq && brew cleanup') == ['brew', 'brew']

    def test_linux_drops_other_managers(self, linux_system):
        assert command_fits_system('sudo apt-get install -y git', linux_system)
        assert command_fits_system('pip install requests', linux_system)
        assert not command_fits_system('brew install git', linux_system)
        assert not command_fits_system('winget install Git.Git', linux_system)
        assert not command_fits_system('sudo dnf install -y git', linux_system)

    def test_windows_allows_all_windows_managers(self, windows_system):
        assert command_fits_system('choco install git -y', windows_system)
        assert command_fits_system('scoop install git', windows_system)
        assert command_fits_system('winget install --id Git.Git -e', windows_system)
        assert not command_fits_system('sudo apt-get install -y git', windows_system)

    def test_filter_keeps_order(self, windows_system):
        dependency = Dependency.from_dict(GIT_PLAN['dependencies'][0])
        filtered = filter_dependencies([dependency], windows_system)

        assert filtered[0].install_commands == ['winget install --id Git.Git -e', 'choco install git -y']
        # Input is not mutated
        assert len(dependency.install_commands) == 3

    def test_filter_rejects_empty_dependencies(self, mac_system):
        dependencies = [
            Dependency(name='git', install_commands=['brew install git']),
            Dependency(name='build-essential', install_commands=['sudo apt-get install -y build-essential']),
        ]
        with pytest.raises(IncompatiblePlanError) as exc_info:
            filter_dependencies(dependencies, mac_system)
        assert exc_info.value.dependencies == ['build-essential']


@pytest.mark.unit
class TestAdvisoryClient:

    def client(self, **kwargs):
        return AdvisoryClient('http://localhost:11434/v1/', 'llama3', **kwargs)

    @patch('envkeeper.advisory.requests.post')
    def test_analyze_request(self, mock_post, windows_system):
        mock_post.return_value = completion('```json\n' + json.dumps(GIT_PLAN) + '\n```')
        plan = self.client(api_key='secret').analyze_request('install git', windows_system)

        assert plan.type == 'single'
        assert [d.name for d in plan.dependencies] == ['git']
        assert 'sudo apt-get install -y git' not in plan.dependencies[0].install_commands

        args, kwargs = mock_post.call_args
        assert args[0] == 'http://localhost:11434/v1/chat/completions'
        assert kwargs['headers']['Authorization'] == 'Bearer secret'
        assert kwargs['json']['model'] == 'llama3'
        assert 'install git' in kwargs['json']['messages'][1]['content']
        assert 'Package Manager: winget' in kwargs['json']['messages'][1]['content']

    @patch('envkeeper.advisory.requests.post')
    def test_no_auth_header_without_key(self, mock_post, linux_system):
        mock_post.return_value = completion(json.dumps(GIT_PLAN))
        self.client().analyze_request('git', linux_system)
        assert 'Authorization' not in mock_post.call_args[1]['headers']

    @patch('envkeeper.advisory.requests.post')
    def test_stack_plan(self, mock_post, linux_system):
        content = {
            'type': 'stack',
            'analysis': 'Web development stack',
            'stack_options': [{'name': 'MERN', 'description': 'Mongo Express React Node'}, 'junk'],
            'dependencies': [{'name': 'nodejs', 'category': 'runtime',
                              'install_commands': ['sudo apt-get install -y nodejs']}],
        }
        mock_post.return_value = completion(json.dumps(content))
        plan = self.client().analyze_request('web stack', linux_system)

        assert plan.type == 'stack'
        assert plan.stack_options == [{'name': 'MERN', 'description': 'Mongo Express React Node'}]
        assert plan.to_dict()['dependencies'][0]['category'] == 'runtime'

    @patch('envkeeper.advisory.requests.post')
    def test_missing_dependencies(self, mock_post, linux_system):
        mock_post.return_value = completion(json.dumps({'type': 'single'}))
        with pytest.raises(AdvisoryServiceError, match='missing'):
            self.client().analyze_request('git', linux_system)

    @patch('envkeeper.advisory.requests.post')
    def test_invalid_dependency(self, mock_post, linux_system):
        content = {'type': 'single', 'dependencies': [{'name': 'git', 'category': 'vcs'}]}
        mock_post.return_value = completion(json.dumps(content))
        with pytest.raises(AdvisoryServiceError, match='Invalid category'):
            self.client().analyze_request('git', linux_system)

    @patch('envkeeper.advisory.requests.post')
    def test_http_error(self, mock_post, linux_system):
        mock_post.return_value = completion('rate limited', status_code=429)
        with pytest.raises(AdvisoryServiceError, match='HTTP 429'):
            self.client().analyze_request('git', linux_system)

    @patch('envkeeper.advisory.requests.post', side_effect=requests.ConnectionError('refused'))
    def test_connection_error(self, mock_post, linux_system):
        with pytest.raises(AdvisoryServiceError, match='Cannot connect'):
            self.client().analyze_request('git', linux_system)

    @patch('envkeeper.advisory.requests.post')
    def test_unexpected_shape(self, mock_post, linux_system):
        response = Mock(status_code=200, text='{}')
        response.json.return_value = {}
        mock_post.return_value = response
        with pytest.raises(AdvisoryServiceError, match='Unexpected advisory response'):
            self.client().complete('system', 'user')

    @patch('envkeeper.advisory.requests.post')
    def test_uninstall_plan(self, mock_post, linux_system):
        packages = [{'name': 'git', 'uninstall_commands': ['sudo apt-get remove -y git'], 'warnings': []}]
        mock_post.return_value = completion(json.dumps({'packages': packages}))

        assert self.client().request_uninstall_plan(['git'], linux_system) == packages
        assert 'INSTALLED PACKAGES: git' in mock_post.call_args[1]['json']['messages'][1]['content']

    @patch('envkeeper.advisory.requests.post')
    def test_uninstall_plan_missing_packages(self, mock_post, linux_system):
        mock_post.return_value = completion(json.dumps({'plan': []}))
        with pytest.raises(AdvisoryServiceError):
            self.client().request_uninstall_plan(['git'], linux_system)


@pytest.mark.unit
class TestErrorDiagnosis:

    @patch('envkeeper.advisory.requests.post')
    def test_diagnosis(self, mock_post, linux_system):
        diagnosis = {'root_cause': 'Stale package index', 'explanation': 'The index is old.',
                     'suggested_fixes': ['sudo apt-get update']}
        mock_post.return_value = completion(json.dumps(diagnosis))

        result = AdvisoryClient('http://x/v1', 'm').analyze_error(
            'sudo apt-get install -y jq', 'E: Unable to locate package jq', 'jq', linux_system, 100)
        assert result == diagnosis
        assert 'EXIT CODE: 100' in mock_post.call_args[1]['json']['messages'][1]['content']

    @patch('envkeeper.advisory.requests.post', side_effect=requests.Timeout('slow'))
    def test_falls_back_when_unavailable(self, mock_post, linux_system):
        result = AdvisoryClient('http://x/v1', 'm').analyze_error('apt-get install jq', '', 'jq', linux_system)
        assert result == fallback_diagnosis('apt-get install jq', linux_system)
        assert 'apt-get update' in result['suggested_fixes'][0]

    @patch('envkeeper.advisory.requests.post')
    def test_falls_back_on_wrong_shape(self, mock_post, windows_system):
        mock_post.return_value = completion(json.dumps({'answer': 'reboot'}))
        result = AdvisoryClient('http://x/v1', 'm').analyze_error('winget install x', '', 'x', windows_system)
        assert 'Administrator' in result['suggested_fixes'][0]
        assert len(result['suggested_fixes']) == 3
