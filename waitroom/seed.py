import os

from waitroom.db import Base, engine
from waitroom.models import play_cursor, status_log  # noqa: F401
from waitroom.services.store import CONTENTS_SUBDIR, ContentStore

DEMO_CONTENTS = {
    "health_tips.json": {
        "meta": {"title": "健康のヒント", "icon": "🍎", "displayMode": "random"},
        "defaultTiming": {"waitTime": 15, "displayTime": 10},
        "items": [
            {"icon": "💧", "title": "こまめな水分補給", "text": "のどが渇く前に少しずつ水を飲みましょう。"},
            {"icon": "🚶", "title": "一日八千歩", "text": "毎日の散歩は心臓と足腰の健康に役立ちます。"},
            {"icon": "😴", "title": "十分な睡眠", "text": "七時間前後の睡眠を目安に、寝る前の画面は控えめに。"},
        ],
    },
    "clinic_info.json": {
        "meta": {"title": "当院からのお知らせ", "icon": "🏥", "displayMode": "order"},
        "items": [
            {"icon": "🕘", "title": "診療時間", "text": "平日 9:00〜18:00 / 土曜 9:00〜13:00"},
            {"icon": "💳", "title": "お支払い", "text": "各種クレジットカードがご利用いただけます。"},
        ],
    },
    "vaccination_guide.json": {
        "meta": {"title": "予防接種のご案内", "icon": "💉", "displayMode": "sequence"},
        "items": [
            {"icon": "1️⃣", "title": "予約", "text": "受付またはお電話でご予約ください。", "displayTime": 12},
            {"icon": "2️⃣", "title": "問診票", "text": "来院前に問診票をご記入いただくとスムーズです。"},
            {"icon": "3️⃣", "title": "接種後", "text": "接種後15分は院内でお待ちください。", "waitTime": 25},
        ],
    },
}


def seed(data_dir: str | None = None) -> ContentStore:
    Base.metadata.create_all(bind=engine)
    store = ContentStore(data_dir)
    store.ensure()
    for filename, document in DEMO_CONTENTS.items():
        store.write_json(os.path.join(CONTENTS_SUBDIR, filename), document)

    store.save_settings({"interval": 20, "duration": 8, "showTips": True})
    store.save_message("本日は混雑が予想されます。順番にお呼びしますのでお待ちください。", True)
    status = store.load_status()
    status["room1"] = {"label": "第1診察室", "number": 12, "visible": True}
    status["room2"] = {"label": "小児科", "number": 3, "visible": True}
    store.save_status(status)
    store.save_playlist("B,clinic_info,vaccination_guide.json")
    return store


if __name__ == "__main__":
    seeded = seed()
    print(f"Demo data written to {seeded.data_dir}")
