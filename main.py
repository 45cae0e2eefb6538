#!/usr/bin/env python3
"""
社区平台运行监控主应用程序入口

组装依赖探测、告警、风险评估与周报组件，
实现应用程序启动、信号处理和优雅关闭。
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Optional, Dict, Any

from community_monitor.alerts.engine import AlertEngine
from community_monitor.alerts.manager import NotificationManager
from community_monitor.models.health_check import AlertKind, OverallStatus
from community_monitor.services.admin_policy import AdminPolicy
from community_monitor.services.config_manager import ConfigManager
from community_monitor.services.health_aggregator import HealthAggregator
from community_monitor.services.metrics_window import MetricsWindow
from community_monitor.services.monitor_scheduler import MonitorScheduler
from community_monitor.services.risk_scorer import RiskScorer
from community_monitor.store.base import BaseStore
from community_monitor.store.supabase_store import create_store
from community_monitor.utils.exceptions import MonitorError, ConfigError, SchedulerError
from community_monitor.utils.log_manager import log_manager, get_logger

# 版本信息
__version__ = "1.0.0"


def format_weekly_report(report: Dict[str, Any]) -> str:
    """把周报数据转换为纯文本消息"""
    metrics = report['metrics']
    lines = [
        '📊 Weekly Admin Report',
        f"Week Ending: {report['week_ending']}",
        f"Total Learners: {report['total_entities']} (+{report['new_entities']} this week)",
        f"Engagement Rate: {report['engagement_rate']}%",
        f"Challenges Completed: {metrics['challenges_completed']}",
        f"Mentor Sessions: {metrics['mentor_sessions']}",
        f"System Uptime: {report['uptime_percentage']}%",
    ]
    if report['top_performers']:
        lines.append('🏆 Top Performers This Week:')
        for index, learner in enumerate(report['top_performers'], 1):
            who = learner.get('slack_user_id') or learner.get('name') or learner['entity_id']
            lines.append(f"{index}. {who} - {learner['challenges_completed']} challenges completed")
    return '\n'.join(lines)


class CommunityMonitorApp:
    """社区平台运行监控主应用程序类"""

    def __init__(self, config_path: str):
        """初始化应用程序

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.logger: Optional[logging.Logger] = None
        self.is_running = False
        self.shutdown_event = asyncio.Event()
        self.log_overrides: Dict[str, Any] = {}

        # 核心组件
        self.config_manager: Optional[ConfigManager] = None
        self.store: Optional[BaseStore] = None
        self.aggregator: Optional[HealthAggregator] = None
        self.notification_manager: Optional[NotificationManager] = None
        self.alert_engine: Optional[AlertEngine] = None
        self.risk_scorer: Optional[RiskScorer] = None
        self.metrics_window: Optional[MetricsWindow] = None
        self.monitor_scheduler: Optional[MonitorScheduler] = None
        self.admin_policy: Optional[AdminPolicy] = None

        # 任务管理
        self.background_tasks = set()

    def initialize(self):
        """初始化应用程序组件

        Raises:
            ConfigError: 配置无效
            MonitorError: 组件创建失败
        """
        try:
            self.config_manager = ConfigManager(self.config_path)
            self.config_manager.load_config()
            global_config = self.config_manager.get_global_config()

            self._configure_logging(global_config)
            self.logger = get_logger('main')
            self.logger.info("开始初始化社区平台运行监控")

            self.store = create_store(self.config_manager.get_store_config())

            self.aggregator = HealthAggregator(global_config.get('history_size', 24))
            self.aggregator.configure_probes(
                self.config_manager.get_dependencies_config(),
                store=self.store,
                default_timeout=global_config.get('probe_timeout', 5)
            )

            self.notification_manager = NotificationManager(
                self.config_manager.get_notifiers_config(),
                duplicate_window=global_config.get('alert_dedup_window', 300)
            )

            rules = self.config_manager.get_alert_rules()
            self.alert_engine = AlertEngine(rules, notifier=self.notification_manager)
            self.risk_scorer = RiskScorer.from_rule(self.alert_engine.rule(AlertKind.ENTITY_INACTIVE))
            self.metrics_window = MetricsWindow(self.store,
                                                window_days=global_config.get('metrics_window_days', 7))

            self.monitor_scheduler = MonitorScheduler(
                self.aggregator, self.alert_engine, self.risk_scorer, self.metrics_window,
                self.store,
                check_interval=global_config.get('check_interval', 3600),
                weekly_report_config=self.config_manager.get_weekly_report_config()
            )
            self.monitor_scheduler.set_cycle_error_callback(self._handle_cycle_error)
            self.monitor_scheduler.set_weekly_report_callback(self._post_weekly_report)

            self.admin_policy = AdminPolicy(global_config.get('admin_users', []))

            self.logger.info("应用程序组件初始化完成")

        except Exception as e:
            if self.logger:
                self.logger.error(f"应用程序初始化失败: {e}", exc_info=True)
            else:
                print(f"应用程序初始化失败: {e}", file=sys.stderr)
            raise

    def _configure_logging(self, global_config: Dict[str, Any]):
        """配置日志系统

        Args:
            global_config: 全局配置
        """
        global_config = {**global_config, **self.log_overrides}
        log_config = {
            'log_level': global_config.get('log_level', 'INFO'),
            'enable_console': True,
        }

        if global_config.get('log_file'):
            log_config['log_file'] = global_config['log_file']
            log_config['max_file_size'] = global_config.get('max_log_size', 10 * 1024 * 1024)
            log_config['backup_count'] = global_config.get('log_backup_count', 5)

        log_manager.configure(log_config)

    async def _handle_cycle_error(self, error: SchedulerError):
        self.logger.error(f"监控周期错误: {error.format_error()}")

    async def _post_weekly_report(self, report: Dict[str, Any]):
        """通过通知渠道发送周报"""
        if not await self.notification_manager.post_report(format_weekly_report(report)):
            self.logger.warning("周报发送失败")

    async def start(self):
        """启动应用程序"""
        if self.is_running:
            self.logger.warning("应用程序已经在运行")
            return

        try:
            self.is_running = True
            self.logger.info("启动社区平台运行监控")

            scheduler_task = asyncio.create_task(self.monitor_scheduler.start())
            self.background_tasks.add(scheduler_task)
            scheduler_task.add_done_callback(self.background_tasks.discard)

            self.logger.info("社区平台运行监控启动完成")

            # 等待关闭信号
            await self.shutdown_event.wait()

        except Exception as e:
            self.logger.error(f"应用程序运行异常: {e}", exc_info=True)
            raise
        finally:
            await self.stop()

    async def stop(self):
        """停止应用程序"""
        if not self.is_running:
            return

        self.logger.info("正在停止社区平台运行监控...")
        self.is_running = False

        try:
            if self.monitor_scheduler:
                await self.monitor_scheduler.stop()

            for task in self.background_tasks:
                if not task.done():
                    task.cancel()

            if self.background_tasks:
                await asyncio.gather(*self.background_tasks, return_exceptions=True)

            self.background_tasks.clear()

            if self.store:
                await self.store.close()

            self.logger.info("社区平台运行监控已停止")
            log_manager.cleanup()

        except Exception as e:
            self.logger.error(f"停止应用程序时发生异常: {e}", exc_info=True)

    def shutdown(self):
        """触发应用程序关闭"""
        if self.logger:
            self.logger.info("收到关闭信号")
        self.shutdown_event.set()

    async def handle_admin_request(self, user_id: Optional[str]) -> Dict[str, Any]:
        """处理管理面板请求

        Args:
            user_id: 发起请求的聊天用户ID

        Returns:
            管理面板数据

        Raises:
            AuthorizationError: 用户不是管理员
        """
        self.admin_policy.require_admin(user_id)
        self.logger.info(f"管理员 {user_id} 请求管理面板")
        return await self.monitor_scheduler.build_dashboard()

    def get_status(self) -> Dict[str, Any]:
        """获取应用程序状态

        Returns:
            应用程序状态信息
        """
        status = {
            'is_running': self.is_running,
            'config_path': self.config_path,
            'background_tasks_count': len(self.background_tasks)
        }

        if self.monitor_scheduler:
            health = self.monitor_scheduler.get_health()
            status['scheduler_stats'] = self.monitor_scheduler.get_scheduler_stats()
            status['health'] = health.to_dict() if health else None
            status['uptime_percentage'] = self.monitor_scheduler.get_uptime()
            status['active_alerts'] = self.monitor_scheduler.get_active_alerts()

        if self.notification_manager:
            status['notifiers'] = self.notification_manager.get_notifier_names()

        return status


# 全局应用程序实例
app: Optional[CommunityMonitorApp] = None


def signal_handler(signum, frame):
    """信号处理器"""
    signal_name = signal.Signals(signum).name
    print(f"\n收到信号 {signal_name} ({signum})")

    if app:
        app.shutdown()
    else:
        print("应用程序未初始化，直接退出")
        sys.exit(0)


def create_argument_parser() -> argparse.ArgumentParser:
    """创建命令行参数解析器"""
    parser = argparse.ArgumentParser(
        prog='community-monitor',
        description='社区平台运行监控 - 监控外部依赖健康状态、学员风险并发送告警通知',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  %(prog)s config.yaml                    # 使用指定配置文件启动监控
  %(prog)s --validate config.yaml        # 验证配置文件格式
  %(prog)s --check-once config.yaml      # 执行一次监控周期
  %(prog)s --report config.yaml          # 输出本周周报
  %(prog)s --test-alerts config.yaml     # 测试通知渠道
  %(prog)s --version                      # 显示版本信息

支持的依赖探测类型:
  - restful   HTTP 接口
  - env_key   环境变量（API Key）是否配置
  - store     持久化存储可达性
  - slack     Slack auth.test
  - redis     Redis PING

配置文件格式请参考 config/example.yaml
        """
    )

    # 位置参数：配置文件路径
    parser.add_argument(
        'config_file',
        nargs='?',
        help='YAML配置文件路径'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--validate',
        action='store_true',
        help='验证配置文件格式并退出'
    )

    parser.add_argument(
        '--test-alerts',
        action='store_true',
        help='发送一条测试告警并退出'
    )

    parser.add_argument(
        '--check-once',
        action='store_true',
        help='执行一次监控周期后退出'
    )

    parser.add_argument(
        '--report',
        action='store_true',
        help='输出本周周报后退出'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='设置日志级别（覆盖配置文件设置）'
    )

    parser.add_argument(
        '--log-file',
        help='日志文件路径（覆盖配置文件设置）'
    )

    return parser


def validate_config_file(config_path: str) -> bool:
    """验证配置文件

    Args:
        config_path: 配置文件路径

    Returns:
        验证是否成功
    """
    try:
        print(f"正在验证配置文件: {config_path}")

        config_manager = ConfigManager(config_path)
        config = config_manager.load_config()

        dependencies = config.get('dependencies', {})
        notifiers = config.get('notifiers', [])

        print("✅ 配置文件验证成功!")
        print(f"   - 依赖数量: {len(dependencies)}")
        print(f"   - 通知渠道数量: {len(notifiers)}")

        if dependencies:
            print("   - 配置的依赖:")
            for name, dependency_config in dependencies.items():
                print(f"     * {name} ({dependency_config.get('type', 'unknown')})")

        print("   - 告警规则:")
        for rule in config_manager.get_alert_rules():
            state = '启用' if rule.enabled else '禁用'
            print(f"     * {rule.kind.value}: 阈值 {rule.threshold:g} ({state})")

        return True

    except Exception as e:
        print(f"❌ 配置文件验证失败: {e}")
        return False


async def run_alert_test(monitor_app: CommunityMonitorApp) -> bool:
    """通过全部通知渠道发送一条测试告警

    Returns:
        测试是否成功
    """
    print(f"正在测试通知渠道: {', '.join(monitor_app.notification_manager.get_notifier_names()) or '无'}")
    success = await monitor_app.notification_manager.post_critical_alert(
        'Test alert from community monitor - please ignore')

    if success:
        print("✅ 通知渠道测试成功!")
    else:
        print("❌ 通知渠道测试失败!")
    return success


async def check_once(monitor_app: CommunityMonitorApp) -> bool:
    """执行一次监控周期

    Returns:
        系统是否健康
    """
    health = await monitor_app.monitor_scheduler.run_cycle()
    if health is None:
        print("❌ 监控周期执行失败")
        return False

    print(f"✅ 监控周期完成，整体状态: {health.overall.value}")
    for result in health.results:
        if result.is_healthy:
            print(f"   ✅ {result.dependency}: 健康 (响应时间: {result.response_time:.3f}s)")
        else:
            print(f"   ❌ {result.dependency}: 不健康 - {result.error_message}")

    alerts = monitor_app.monitor_scheduler.get_active_alerts()
    if alerts:
        print(f"活动告警 ({len(alerts)}):")
        for alert in alerts:
            print(f"   • {alert}")

    return health.overall is OverallStatus.HEALTHY


async def print_weekly_report(monitor_app: CommunityMonitorApp) -> bool:
    report = await monitor_app.monitor_scheduler.build_weekly_report()
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return not report['metrics']['failed_metrics']


async def main():
    """主函数"""
    global app

    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.config_file:
        parser.print_help()
        sys.exit(1)

    config_path = args.config_file

    if not os.path.exists(config_path):
        print(f"配置文件不存在: {config_path}", file=sys.stderr)
        sys.exit(1)

    if args.validate:
        success = validate_config_file(config_path)
        sys.exit(0 if success else 1)

    exit_code = 0
    try:
        app = CommunityMonitorApp(config_path)

        # 命令行参数覆盖日志配置
        if args.log_level:
            app.log_overrides['log_level'] = args.log_level
        if args.log_file:
            app.log_overrides['log_file'] = args.log_file

        app.initialize()

        if args.test_alerts or args.check_once or args.report:
            if args.test_alerts:
                success = await run_alert_test(app)
            elif args.check_once:
                success = await check_once(app)
            else:
                success = await print_weekly_report(app)
            exit_code = 0 if success else 1
        else:
            signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C
            signal.signal(signal.SIGTERM, signal_handler)  # 终止信号

            print(f"社区平台运行监控 v{__version__} 已启动")
            print(f"配置文件: {config_path}")
            print("按 Ctrl+C 停止程序")

            await app.start()

    except KeyboardInterrupt:
        print("\n用户中断程序")
    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        exit_code = 1
    except MonitorError as e:
        print(f"运行监控错误: {e}", file=sys.stderr)
        exit_code = 1
    except Exception as e:
        print(f"未预期的错误: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        exit_code = 1
    finally:
        if app and app.store:
            await app.store.close()

    sys.exit(exit_code)


def cli():
    """命令行入口"""
    # 设置事件循环策略（Windows兼容性）
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    asyncio.run(main())


if __name__ == "__main__":
    cli()
