"""Offline substitution tables used when neither the cache nor /translate can answer.

PHRASES are matched longest-first before WORDS; both are case-insensitive.
"""

PHRASES: dict[str, dict[str, str]] = {
    "en-hi": {
        "Mouse": "माउस",
        "A Computer Part": "एक कंप्यूटर भाग",
        "Parts of a Mouse": "माउस के भाग",
        "Left Button": "बायां बटन",
        "Right Button": "दायां बटन",
        "Scroll Wheel": "स्क्रॉल व्हील",
        "Uses of Mouse": "माउस के उपयोग",
        "Example for Students": "छात्रों के लिए उदाहरण",
        "A mouse is a small device that helps us control the computer.": "माउस एक छोटा उपकरण है जो हमें कंप्यूटर को नियंत्रित करने में मदद करता है।",
        "It has two buttons and a scroll wheel.": "इसमें दो बटन और एक स्क्रॉल व्हील होता है।",
        "The mouse helps us to point, click, and move things on the screen.": "माउस हमें स्क्रीन पर पॉइंट करने, क्लिक करने और चीजों को हिलाने में मदद करता है।",
        "We move the mouse to move the cursor on the screen.": "हम स्क्रीन पर कर्सर को हिलाने के लिए माउस को हिलाते हैं।",
        "The right button shows us more options.": "दायां बटन हमें अधिक विकल्प दिखाता है।",
        "We can open programs by clicking on them.": "हम उन पर क्लिक करके प्रोग्राम खोल सकते हैं।",
        "Click the left button to open a picture.": "चित्र खोलने के लिए बायां बटन क्लिक करें।",
        "how to": "कैसे",
        "step by step": "चरणबद्ध तरीके से",
    },
    "en-pa": {
        "Mouse": "ਮਾਊਸ",
        "A Computer Part": "ਕੰਪਿਊਟਰ ਦਾ ਇੱਕ ਹਿੱਸਾ",
        "Parts of a Mouse": "ਮਾਊਸ ਦੇ ਹਿੱਸੇ",
        "Left Button": "ਖੱਬਾ ਬਟਨ",
        "Right Button": "ਸੱਜਾ ਬਟਨ",
        "Scroll Wheel": "ਸਕ੍ਰੋਲ ਵ੍ਹੀਲ",
        "Uses of Mouse": "ਮਾਊਸ ਦੇ ਉਪਯੋਗ",
        "Example for Students": "ਵਿਦਿਆਰਥੀਆਂ ਲਈ ਉਦਾਹਰਣ",
        "A mouse is a small device that helps us control the computer.": "ਮਾਊਸ ਇੱਕ ਛੋਟਾ ਉਪਕਰਣ ਹੈ ਜੋ ਸਾਨੂੰ ਕੰਪਿਊਟਰ ਨੂੰ ਕੰਟਰੋਲ ਕਰਨ ਵਿੱਚ ਮਦਦ ਕਰਦਾ ਹੈ।",
        "It has two buttons and a scroll wheel.": "ਇਸ ਵਿੱਚ ਦੋ ਬਟਨ ਅਤੇ ਇੱਕ ਸਕ੍ਰੋਲ ਵ੍ਹੀਲ ਹੁੰਦਾ ਹੈ।",
        "how to": "ਕਿਵੇਂ",
        "step by step": "ਕਦਮ ਦਰ ਕਦਮ",
    },
}

WORDS: dict[str, dict[str, str]] = {
    "en-hi": {
        "computer": "कंप्यूटर",
        "keyboard": "कीबोर्ड",
        "screen": "स्क्रीन",
        "monitor": "मॉनिटर",
        "printer": "प्रिंटर",
        "cursor": "कर्सर",
        "button": "बटन",
        "click": "क्लिक",
        "internet": "इंटरनेट",
        "website": "वेबसाइट",
        "email": "ईमेल",
        "password": "पासवर्ड",
        "file": "फाइल",
        "folder": "फोल्डर",
        "program": "प्रोग्राम",
        "software": "सॉफ्टवेयर",
        "hardware": "हार्डवेयर",
        "window": "विंडो",
        "menu": "मेन्यू",
        "icon": "आइकन",
        "desktop": "डेस्कटॉप",
        "lesson": "पाठ",
        "course": "कोर्स",
        "student": "छात्र",
        "teacher": "शिक्षक",
        "class": "कक्षा",
        "school": "स्कूल",
        "book": "किताब",
        "chapter": "अध्याय",
        "question": "प्रश्न",
        "answer": "उत्तर",
        "quiz": "क्विज",
        "exam": "परीक्षा",
        "score": "स्कोर",
        "result": "परिणाम",
        "progress": "प्रगति",
        "learn": "सीखें",
        "practice": "अभ्यास",
        "important": "महत्वपूर्ण",
        "remember": "याद रखें",
        "example": "उदाहरण",
        "skill": "कौशल",
    },
    "en-pa": {
        "computer": "ਕੰਪਿਊਟਰ",
        "keyboard": "ਕੀਬੋਰਡ",
        "screen": "ਸਕ੍ਰੀਨ",
        "monitor": "ਮਾਨੀਟਰ",
        "printer": "ਪ੍ਰਿੰਟਰ",
        "cursor": "ਕਰਸਰ",
        "button": "ਬਟਨ",
        "click": "ਕਲਿਕ",
        "internet": "ਇੰਟਰਨੈੱਟ",
        "website": "ਵੈੱਬਸਾਈਟ",
        "email": "ਈਮੇਲ",
        "password": "ਪਾਸਵਰਡ",
        "file": "ਫਾਈਲ",
        "folder": "ਫੋਲਡਰ",
        "program": "ਪ੍ਰੋਗਰਾਮ",
        "software": "ਸਾਫਟਵੇਅਰ",
        "hardware": "ਹਾਰਡਵੇਅਰ",
        "window": "ਵਿੰਡੋ",
        "menu": "ਮੈਨੂ",
        "icon": "ਆਈਕਨ",
        "desktop": "ਡੈਸਕਟਾਪ",
        "lesson": "ਪਾਠ",
        "course": "ਕੋਰਸ",
        "student": "ਵਿਦਿਆਰਥੀ",
        "teacher": "ਅਧਿਆਪਕ",
        "class": "ਕਲਾਸ",
        "school": "ਸਕੂਲ",
        "book": "ਕਿਤਾਬ",
        "chapter": "ਅਧਿਆਇ",
        "question": "ਸਵਾਲ",
        "answer": "ਜਵਾਬ",
        "quiz": "ਕਵਿਜ਼",
        "exam": "ਪ੍ਰੀਖਿਆ",
        "score": "ਸਕੋਰ",
        "result": "ਨਤੀਜਾ",
        "progress": "ਤਰੱਕੀ",
        "learn": "ਸਿੱਖੋ",
        "practice": "ਅਭਿਆਸ",
        "important": "ਮਹੱਤਵਪੂਰਨ",
        "remember": "ਯਾਦ ਰੱਖੋ",
        "example": "ਉਦਾਹਰਣ",
        "skill": "ਹੁਨਰ",
    },
}
