import random

import pymysql

if __name__ == '__main__':
    conn = pymysql.connect(host="localhost", user="root", password="", database="shop", autocommit=True)

    with conn.cursor() as cursor:
        # 新订单触发 open_orders 刷新
        cursor.execute(
            "INSERT INTO orders (user_id, total, status) VALUES (%s, %s, 'open')",
            (random.randint(1, 10), round(random.uniform(5, 100), 2))
        )
        cursor.execute(
            "UPDATE orders SET status = 'paid' WHERE status = 'open' ORDER BY id LIMIT 1"
        )

    conn.close()
    print("✓ 已写入测试订单，watch_orders.py 会收到更新")
