"""通知渠道测试"""

import json
import pytest
from datetime import datetime
from unittest.mock import Mock, AsyncMock, patch
from aiohttp import ClientError

from community_monitor.alerts.base import CRITICAL_PREFIX
from community_monitor.alerts.slack_notifier import SlackNotifier
from community_monitor.alerts.webhook_notifier import WebhookNotifier
from community_monitor.models.health_check import Notification, AlertSeverity
from community_monitor.utils.exceptions import AlertConfigError, AlertSendError


def mock_session_for(method, status=200, json_body=None, text=''):
    mock_response = Mock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_body or {})
    mock_response.text = AsyncMock(return_value=text)

    mock_request_context = AsyncMock()
    mock_request_context.__aenter__ = AsyncMock(return_value=mock_response)
    mock_request_context.__aexit__ = AsyncMock(return_value=None)

    mock_session = Mock()
    setattr(mock_session, method, Mock(return_value=mock_request_context))
    return mock_session


class TestSlackNotifier:
    """Slack 通知渠道测试类"""

    def setup_method(self):
        self.config = {'token': 'xoxb-test', 'channel': 'C-ADMIN', 'max_retries': 1,
                       'retry_delay': 0.5}
        self.notifier = SlackNotifier('admin-channel', self.config)

    def test_init_invalid_config(self):
        with pytest.raises(AlertConfigError):
            SlackNotifier('admin-channel', {'token': 'xoxb-test'})
        with pytest.raises(AlertConfigError):
            SlackNotifier('admin-channel', {'channel': 'C-ADMIN'})

    def test_notifier_type(self):
        assert self.notifier.notifier_type == 'slack'

    def test_critical_blocks(self):
        blocks = self.notifier._build_blocks(Notification(
            text='x', severity=AlertSeverity.CRITICAL, title='Multiple systems are down'))

        text = blocks[0]['text']['text']
        assert text.startswith('🚨 *CRITICAL ALERT*')
        assert 'Multiple systems are down' in text
        assert text.endswith('Please investigate immediately.')

    @pytest.mark.asyncio
    async def test_post_critical_alert(self):
        session = mock_session_for('post', json_body={'ok': True})

        with patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await self.notifier.post_critical_alert('Redis is down') is True

        args, kwargs = session.post.call_args
        assert args[0] == 'https://slack.com/api/chat.postMessage'
        assert kwargs['headers'] == {'Authorization': 'Bearer xoxb-test'}
        assert kwargs['json']['channel'] == 'C-ADMIN'
        assert kwargs['json']['text'] == f'{CRITICAL_PREFIX}: Redis is down'

    @pytest.mark.asyncio
    async def test_slack_rejects_message(self):
        session = mock_session_for('post', json_body={'ok': False, 'error': 'channel_not_found'})

        with patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await self.notifier.send_message('weekly report') is False

        # 对端明确拒绝时不重试
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_http_error_is_retried_then_raised(self):
        session = mock_session_for('post', status=500)

        with patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            with patch('asyncio.sleep') as mock_sleep:
                with pytest.raises(AlertSendError):
                    await self.notifier.send_message('hello')

        assert session.post.call_count == 2
        mock_sleep.assert_called_once_with(0.5)


class TestWebhookNotifier:
    """Webhook 通知渠道测试类"""

    def setup_method(self):
        self.config = {
            'url': 'https://hooks.example.com/monitor',
            'headers': {'Authorization': 'Bearer token123'},
            'max_retries': 2,
            'retry_delay': 1.0,
        }
        self.notification = Notification(
            text='🚨 CRITICAL ALERT: Multiple systems are down',
            severity=AlertSeverity.CRITICAL,
            title='Multiple systems are down',
            timestamp=datetime(2024, 1, 1, 12, 0, 0)
        )

    def test_init_invalid_config(self):
        with pytest.raises(AlertConfigError):
            WebhookNotifier('hook', {'method': 'POST'})
        with pytest.raises(AlertConfigError):
            WebhookNotifier('hook', {'url': 'not-a-url'})
        with pytest.raises(AlertConfigError):
            WebhookNotifier('hook', {'url': 'https://x.example.com', 'method': 'DELETE'})

    def test_default_payload(self):
        notifier = WebhookNotifier('hook', self.config)

        data = notifier._prepare_request_data(self.notification)

        assert data['json']['severity'] == 'critical'
        assert data['json']['title'] == 'Multiple systems are down'
        assert data['json']['timestamp'] == '2024-01-01T12:00:00'

    def test_get_uses_params(self):
        notifier = WebhookNotifier('hook', {**self.config, 'method': 'GET'})

        data = notifier._prepare_request_data(self.notification)

        assert data['params']['message'] == self.notification.text

    def test_json_template_is_escaped(self):
        template = '{"text": "{{message}}", "level": "{{severity}}", "at": "{{timestamp}}"}'
        notifier = WebhookNotifier('hook', {**self.config, 'template': template})
        notification = Notification(text='say "hi"\nnow', timestamp=datetime(2024, 1, 1))

        data = notifier._prepare_request_data(notification)

        assert data['json'] == {'text': 'say "hi"\nnow', 'level': 'info',
                                'at': '2024-01-01 00:00:00'}

    def test_plain_text_template(self):
        notifier = WebhookNotifier('hook', {**self.config, 'template': 'ALERT {{title}}'})

        data = notifier._prepare_request_data(self.notification)

        assert data == {'data': 'ALERT Multiple systems are down'}

    @pytest.mark.asyncio
    async def test_send_success(self):
        notifier = WebhookNotifier('hook', self.config)
        session = mock_session_for('request', status=204)

        with patch('aiohttp.TCPConnector'), patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await notifier.send(self.notification) is True

        args, kwargs = session.request.call_args
        assert args == ('POST', 'https://hooks.example.com/monitor')
        assert json.dumps(kwargs['json'], ensure_ascii=False).count('Multiple systems') == 2

    @pytest.mark.asyncio
    async def test_error_status_is_not_retried(self):
        notifier = WebhookNotifier('hook', self.config)
        session = mock_session_for('request', status=400, text='bad request')

        with patch('aiohttp.TCPConnector'), patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            assert await notifier.send(self.notification) is False

        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_raises_send_error(self):
        notifier = WebhookNotifier('hook', self.config)
        session = Mock()
        session.request = Mock(side_effect=ClientError("网络错误"))

        with patch('aiohttp.TCPConnector'), patch('aiohttp.ClientSession') as mock_client_session:
            mock_client_session.return_value.__aenter__ = AsyncMock(return_value=session)
            mock_client_session.return_value.__aexit__ = AsyncMock(return_value=None)

            with pytest.raises(AlertSendError):
                await notifier._send_request(self.notification)

    @pytest.mark.asyncio
    async def test_retry_with_exponential_backoff(self):
        notifier = WebhookNotifier('hook', self.config)

        with patch.object(notifier, '_send_request',
                          side_effect=[Exception("发送失败"), Exception("发送失败"), True]) as mock_send:
            with patch('asyncio.sleep') as mock_sleep:
                assert await notifier.send(self.notification) is True

        assert mock_send.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_all_retries_fail(self):
        notifier = WebhookNotifier('hook', self.config)

        with patch.object(notifier, '_send_request', side_effect=Exception("发送失败")):
            with patch('asyncio.sleep'):
                with pytest.raises(AlertSendError):
                    await notifier.send(self.notification)
