import asyncio

from mysql_live_select import LiveMySQL, Trigger, load_config
from mysql_live_select.utils.logging import configure_logging


def is_open(row, new_row=None):
    """只关心 open 订单或状态变化的订单"""
    if new_row is not None:
        return row["status"] != new_row["status"]
    return row["status"] == "open"


async def main():
    config = load_config("live.yaml")
    configure_logging(config.log_level)

    live = LiveMySQL.from_config(config)

    open_orders = live.select(
        "SELECT id, user_id, total FROM orders WHERE status = 'open' ORDER BY id",
        [Trigger(table="orders", condition=is_open)]
    )
    open_orders.on_update(lambda rows: print(f"open orders: {len(rows)}"))
    open_orders.on_error(lambda error: print(f"query failed: {error}"))

    def on_ready(error):
        if error is not None:
            print(f"启动失败: {error}")
        else:
            print("✓ 已就绪，等待 binlog 事件...")

    await live.start(on_ready)

    # 输出初始结果
    await live.resume()

    try:
        while True:
            await asyncio.sleep(5)
            status = live.get_status()
            print(
                f"事件: {status.events_received} | 查询: {status.queries_executed} "
                f"| 去重: {status.cache_hits}"
            )
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\n停止...")
    finally:
        await live.end()


if __name__ == "__main__":
    asyncio.run(main())
