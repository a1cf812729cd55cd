from __future__ import annotations

SUPPORTED_LANGUAGES = ("en", "sv", "hi", "pa")

_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "NO_CONTEXT_FOLLOWUP": "I don't have any previous results to refer to. Could you tell me what you're looking for?",
        "FACT_NO_MATCH": "I'm unsure which dish you mean. Could you specify?",
        "WHICH_DISH": "Which dish are you asking about? {list}?",
        "BACK_TO_SEARCHING": "Back to searching all restaurants. What would you like to find?",
        "ALLERGEN_TAGGED_PREFIX": "Contains allergens (tagged): {list}. ⚠️ Tags are guidance; cross-contamination may occur.",
        "ALLERGEN_NOT_TAGGED": "No allergens are tagged for {dish}. ⚠️ Tags are guidance; cross-contamination may occur.",
        "TAGS_GUIDANCE_DISCLAIMER": "⚠️ Tags are guidance; cross-contamination may occur.",
        "TAGGED_YES": '{dish} is tagged "{tag}" in our data.',
        "TAGGED_NO": '{dish} is not tagged "{tag}" in our data.',
        "ATTRIBUTE_EVIDENCE": "Based on the menu, {dish} appears to be {attribute} ({source}). Please confirm with the restaurant.",
        "ATTRIBUTE_NO_DATA": "I don't have {attribute} info for {dish} in the menu data. Please ask the restaurant directly.",
        "FOUND_RESULTS": "I found these matches:",
        "FOUND_TAGGED": "I found dishes tagged '{tag}':",
        "FOUND_AT_RESTAURANT": "Here is what I found at {restaurant}:",
        "NO_RESULTS": "I couldn't find any matches for your search.",
        "NO_MATCH_TRY_AGAIN": "I couldn't find any '{query}' that is {tag}. Try a different search?",
        "YES_PREFIX": "✅ Yes —",
        "NO_PREFIX": "❌ No —",
        "CLARIFY_PROMPT": "What are you in the mood for? Tell me a dish, a cuisine or a dietary need (for example \"vegan pizza\" or \"halal biryani\").",
        "RESHOW_INTRO": "Here are the results again:",
        "RESHOW_EMPTY": "Your last search didn't find anything. Could you try a different dish or fewer filters?",
        "MORE_RESULTS": "Here are more results:",
        "NO_MORE_RESULTS": "I don't have more results to show. Try a new search!",
        "ALL_RESULTS_SHOWN": "That's all the results I have!",
        "ALL_SHOWN_FROM": "I've already shown all matching dishes from {restaurant}.",
        "NO_EXPLANATION_TO_TRANSLATE": "I don't have a previous explanation to translate. Ask me about a specific dish first!",
        "NO_DISH_DETAILS": "I don't have details about {dish} yet. Try searching for it to see where it's served.",
        "MENU_INTRO": "Here's {restaurant}'s menu.",
        "NO_MENU": "No menu found for {restaurant}.",
        "MENU_NEEDS_RESTAURANT": "Which restaurant's menu would you like to see?",
        "RESTAURANT_NOT_FOUND": "I couldn't find a restaurant called \"{name}\".",
        "PROFILE_OPEN": "{restaurant} is open now ({hours}).",
        "PROFILE_CLOSED": "{restaurant} is closed right now.",
        "PROFILE_HOURS": "{restaurant}: today's hours are {hours}.",
        "SOMETHING_WENT_WRONG": "I'm having trouble processing that request. Could you try again?",
    },
    "sv": {
        "NO_CONTEXT_FOLLOWUP": "Jag har inga tidigare resultat att utgå från. Vad letar du efter?",
        "FACT_NO_MATCH": "Jag är osäker på vilken rätt du menar. Kan du precisera?",
        "WHICH_DISH": "Vilken rätt menar du? {list}?",
        "BACK_TO_SEARCHING": "Tillbaka till sökning bland alla restauranger. Vad vill du hitta?",
        "ALLERGEN_TAGGED_PREFIX": "Innehåller allergener (taggade): {list}. ⚠️ Taggar är vägledning; korskontaminering kan förekomma.",
        "ALLERGEN_NOT_TAGGED": "Inga allergener är taggade för {dish}. ⚠️ Taggar är vägledning; korskontaminering kan förekomma.",
        "TAGS_GUIDANCE_DISCLAIMER": "⚠️ Taggar är vägledning; korskontaminering kan förekomma.",
        "TAGGED_YES": '{dish} är taggad "{tag}" i vår data.',
        "TAGGED_NO": '{dish} är inte taggad "{tag}" i vår data.',
        "FOUND_RESULTS": "Jag hittade dessa resultat:",
        "FOUND_TAGGED": "Jag hittade rätter taggade '{tag}':",
        "FOUND_AT_RESTAURANT": "Det här hittade jag hos {restaurant}:",
        "NO_RESULTS": "Jag kunde inte hitta några träffar för din sökning.",
        "NO_MATCH_TRY_AGAIN": "Jag kunde inte hitta några '{query}' som är {tag}. Prova en annan sökning?",
        "YES_PREFIX": "✅ Ja —",
        "NO_PREFIX": "❌ Nej —",
        "CLARIFY_PROMPT": "Vad är du sugen på? Berätta en rätt, ett kök eller en kostpreferens (till exempel \"vegansk pizza\").",
        "RESHOW_INTRO": "Här är resultaten igen:",
        "RESHOW_EMPTY": "Din senaste sökning gav inga träffar. Prova en annan rätt eller färre filter?",
        "MORE_RESULTS": "Här är fler resultat:",
        "NO_MORE_RESULTS": "Jag har inga fler resultat att visa. Prova en ny sökning!",
        "ALL_RESULTS_SHOWN": "Det var alla resultat jag har!",
        "ALL_SHOWN_FROM": "Jag har redan visat alla matchande rätter från {restaurant}.",
        "NO_EXPLANATION_TO_TRANSLATE": "Jag har ingen tidigare förklaring att översätta. Fråga mig om en rätt först!",
        "MENU_INTRO": "Här är menyn för {restaurant}.",
        "NO_MENU": "Ingen meny hittades för {restaurant}.",
        "MENU_NEEDS_RESTAURANT": "Vilken restaurangs meny vill du se?",
        "RESTAURANT_NOT_FOUND": "Jag kunde inte hitta någon restaurang som heter \"{name}\".",
        "PROFILE_OPEN": "{restaurant} har öppet nu ({hours}).",
        "PROFILE_CLOSED": "{restaurant} har stängt just nu.",
        "SOMETHING_WENT_WRONG": "Något gick fel. Kan du försöka igen?",
    },
    "hi": {
        "NO_CONTEXT_FOLLOWUP": "मेरे पास पिछले परिणाम नहीं हैं। आप क्या खोज रहे हैं?",
        "FACT_NO_MATCH": "मुझे समझ नहीं आया आप किस व्यंजन की बात कर रहे हैं। कृपया स्पष्ट करें?",
        "BACK_TO_SEARCHING": "सभी रेस्तराँ खोजने पर वापस। आप क्या खोजना चाहते हैं?",
        "ALLERGEN_TAGGED_PREFIX": "एलर्जेन (टैग किए गए): {list}। ⚠️ टैग केवल मार्गदर्शन हैं; क्रॉस-संदूषण हो सकता है।",
        "ALLERGEN_NOT_TAGGED": "{dish} के लिए कोई एलर्जेन टैग नहीं किया गया। ⚠️ टैग केवल मार्गदर्शन हैं; क्रॉस-संदूषण हो सकता है।",
        "TAGS_GUIDANCE_DISCLAIMER": "⚠️ टैग केवल मार्गदर्शन हैं; क्रॉस-संदूषण हो सकता है।",
        "FOUND_RESULTS": "मुझे ये मिला:",
        "FOUND_TAGGED": "मुझे '{tag}' टैग वाले व्यंजन मिले:",
        "NO_RESULTS": "मुझे आपकी खोज के लिए कोई परिणाम नहीं मिला।",
        "NO_MATCH_TRY_AGAIN": "मुझे कोई '{query}' नहीं मिला जो {tag} हो। कोई और खोज आज़माएँ?",
        "YES_PREFIX": "✅ हाँ —",
        "NO_PREFIX": "❌ नहीं —",
        "RESTAURANT_NOT_FOUND": "मुझे \"{name}\" नाम का कोई रेस्तराँ नहीं मिला।",
    },
    "pa": {
        "NO_CONTEXT_FOLLOWUP": "ਮੇਰੇ ਕੋਲ ਪਿਛਲੇ ਨਤੀਜੇ ਨਹੀਂ ਹਨ। ਤੁਸੀਂ ਕੀ ਲੱਭ ਰਹੇ ਹੋ?",
        "FACT_NO_MATCH": "ਮੈਨੂੰ ਸਮਝ ਨਹੀਂ ਆਇਆ ਤੁਸੀਂ ਕਿਹੜੇ ਪਕਵਾਨ ਦੀ ਗੱਲ ਕਰ ਰਹੇ ਹੋ। ਕਿਰਪਾ ਕਰਕੇ ਦੱਸੋ?",
        "BACK_TO_SEARCHING": "ਸਾਰੇ ਰੈਸਟੋਰੈਂਟਾਂ ਦੀ ਖੋਜ 'ਤੇ ਵਾਪਸ। ਤੁਸੀਂ ਕੀ ਲੱਭਣਾ ਚਾਹੁੰਦੇ ਹੋ?",
        "ALLERGEN_TAGGED_PREFIX": "ਐਲਰਜੀ (ਟੈਗ ਕੀਤੇ): {list}। ⚠️ ਟੈਗ ਸਿਰਫ਼ ਮਾਰਗਦਰਸ਼ਨ ਹਨ; ਕਰਾਸ-ਦੂਸ਼ਣ ਹੋ ਸਕਦਾ ਹੈ।",
        "ALLERGEN_NOT_TAGGED": "{dish} ਲਈ ਕੋਈ ਐਲਰਜੀ ਟੈਗ ਨਹੀਂ ਕੀਤਾ। ⚠️ ਟੈਗ ਸਿਰਫ਼ ਮਾਰਗਦਰਸ਼ਨ ਹਨ; ਕਰਾਸ-ਦੂਸ਼ਣ ਹੋ ਸਕਦਾ ਹੈ।",
        "TAGS_GUIDANCE_DISCLAIMER": "⚠️ ਟੈਗ ਸਿਰਫ਼ ਮਾਰਗਦਰਸ਼ਨ ਹਨ; ਕਰਾਸ-ਦੂਸ਼ਣ ਹੋ ਸਕਦਾ ਹੈ।",
        "FOUND_RESULTS": "ਮੈਨੂੰ ਇਹ ਮਿਲਿਆ:",
        "FOUND_TAGGED": "ਮੈਨੂੰ '{tag}' ਟੈਗ ਵਾਲੇ ਪਕਵਾਨ ਮਿਲੇ:",
        "NO_RESULTS": "ਮੈਨੂੰ ਤੁਹਾਡੀ ਖੋਜ ਲਈ ਕੋਈ ਨਤੀਜਾ ਨਹੀਂ ਮਿਲਿਆ।",
        "NO_MATCH_TRY_AGAIN": "ਮੈਨੂੰ ਕੋਈ '{query}' ਨਹੀਂ ਮਿਲਿਆ ਜੋ {tag} ਹੋਵੇ। ਕੋਈ ਹੋਰ ਖੋਜ ਅਜ਼ਮਾਓ?",
        "YES_PREFIX": "✅ ਹਾਂ —",
        "NO_PREFIX": "❌ ਨਹੀਂ —",
        "RESTAURANT_NOT_FOUND": "ਮੈਨੂੰ \"{name}\" ਨਾਮ ਦਾ ਕੋਈ ਰੈਸਟੋਰੈਂਟ ਨਹੀਂ ਮਿਲਿਆ।",
    },
}


def t(lang: str | None, key: str, **values: object) -> str:
    """Localized string for ``key``, falling back to English, with ``{name}`` placeholders filled."""
    table = _MESSAGES.get((lang or "en").lower(), _MESSAGES["en"])
    text = table.get(key) or _MESSAGES["en"].get(key, "")
    for name, value in values.items():
        text = text.replace(f"{{{name}}}", str(value))
    return text


def is_supported_language(lang: str | None) -> bool:
    return (lang or "en").lower() in SUPPORTED_LANGUAGES
