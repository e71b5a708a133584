"""
Obfuscation decoder for banned-word patterns.

Banned words are stored ROT13-rotated so the dictionary is not a wall of
slurs. Decoding rotates a source back and widens every plain letter into a
character class of its look-alikes, so one pattern catches "fuck", "fμck",
"ｆｕｃｋ" and "🇫🇺🇨🇰" alike.
"""

from __future__ import annotations

import re
from string import ascii_letters
from typing import Iterable

from strikeguard.utils.text import caesar

# Look-alikes per letter. A class never contains a different plain ASCII
# letter, otherwise "q" would also match "o" and "i" would match "l".
HOMOGLYPHS: dict[str, str] = {
    "a": "a⒜@*#⍺₳4ａⓐＡᵃₐᴬåǟÃąẚᴀɐɑɒαΑΔΛаАคภᎪᗅᗩꓮ🅰🇦-",
    "b": "b⒝฿8ｂⓑℬʙɓꞵƅβвьҍⴆცꮟᏸᏼᑲᖯᗷꓐ🇧",
    "c": "c⒞¢₵ｃⅽⓒℂℭᶜᴄƈϲⲥсꮯᐸᑕᑢᑦꓚ匚🇨",
    "d": "d⒟🅱ɒｄⅾⅆⓓⅅđðᴅɖԁԃժꭰꮷᑯᗞᗪꓒꓓ𝐃🇩",
    "e": "e⒠*#📧℮⋿£3ɐｅⅇℯⓔℰₑᴇꬲɛεеєҽⴹꭼꮛꓰ𝐄🇪-",
    "f": "f⒡⸁₣ｆⓕℱᶠꜰꬵꞙƒʄẝϝғքᖴꓝ𝐅🇫",
    "g": "g⒢₲ｇℊⓖɡɢᶃɠƍԍցꮆꮐᏻꓖ𝐆🇬",
    "h": "h⒣#ｈℎⓗℍℌℋₕħʜɦⱨɧℜηⲏнԋһհክዘዪꮋꮒᕼんꓧ卄𝐇🇭",
    "i": "i!¡⑴⒤ℹ*#׀⇂|∣⍳❕❗⥜1１❶①⓵¹₁ｉⅰⅈⓘℐℑⁱıɪᶦᴉɩｌⅼℓǀιⲓіꙇӏוןاﺎﺍߊⵏꭵᛁꓲ🇮-",
    "j": "j⒥ℑｊⅉⓙⱼᴊʝɟʄϳјյꭻᒍᒚꓙ𝐉🇯",
    "k": "k⒦₭ｋⓚₖᴋƙʞκⲕкӄҟҝꮶᛕꓗ𝐊🇰",
    "l": "l⒧׀|∣1ｉⅰℐℑɩｌⅼℓⓛℒₗʟⱡɭɮꞁǀιⲓⳑіӏוןاﺎﺍߊⵏꮭꮮᒪᛁﾚㄥꓡꓲ🇱",
    "m": "m⒨♍₥๓ｍⅿⓜⓂℳₘᴍɱꭑʍμϻⲙмጠꮇᗰᘻᛖﾶꓟ爪𝐌🇲",
    "n": "n⒩♑₦ｎⓝℕⁿₙɴᴎɲɳŋηνⲛђипղոռሸꮑᑎᘉꓠ刀𝐍🇳",
    "o": "o⒪*#°⊘⍥🅾○⭕¤၀๐໐߀〇০୦0०੦૦௦౦೦൦０⓪⓿⁰₀٥۵ｏℴⓞºₒᴏᴑꬽθοσⲟофჿօסⵔዐዕଠഠဝꓳ🇴-",
    "p": "p⒫⍴ｐⓟℙₚᴘρϱ🅿ⲣрየꮲᑭꓑ𝐏🇵",
    "q": "q⒬۹9ｑⓠℚϙϱԛфգզⵕᑫ𝐐🇶",
    "r": "r⒭ｒⓡℝℛℜʀɾꭇꭈᴦⲅгհዪꭱꮁꮢꮧᖇꓣ乃几卂尺𝐑🇷",
    "s": "s⒮§$₴ｓⓢₛꜱʂƽςѕꙅտֆꭶꮥꮪᔆᔕꓢ丂𝐒🇸",
    "t": "t⒯⊤⟙✝ℑｔⓣₜᴛŧƫƭτⲧтፕꭲꮏｷꓔ千🇹",
    "u": "u⒰*#∪⋃ｕⓤꞟᴜꭎꭒɥʋυսሀሁᑌꓴ𝐔🇺-",
    "v": "v⒱℣√∨⋁☑✅✔۷٧ｖⅴⓥⱽᴠνѵⴸꮙꮩᐯᐺꓦ𝐕🇻",
    "w": "w⒲ɯｗⓦᴡʍѡԝաሠꮃꮤꓪ🇼",
    "x": "x᙮⒳᙭×⌧╳⤫⤬⨯ｘⅹⓧₓꭓχⲭжхӽӿҳאⵝᕁᕽᚷﾒꓫ乂𝐗🇽",
    "y": "y⒴५ɣᶌｙⓨʏỿꭚγℽυϒⲩуүყሃꭹꮍꓬ𝐘*#🇾-",
    "z": "z⒵ｚⓩℤℨᶻᴢƶȥʐʑⱬƹƨζչꮓᙆえꓜ乙𝐙🇿",
}

# A space in a source matches any single separator
SEPARATOR_CLASS = r"[\W_]"

CHARACTER_CLASSES: dict[str, str] = {
    letter: "[" + "".join(re.escape(char) for char in dict.fromkeys(chars)) + "]"
    for letter, chars in HOMOGLYPHS.items()
}

# Group openers and inline flags whose letters are syntax, not text
GROUP_PREFIX_PATTERN = re.compile(
    r"\(\?(?:[:=!]|<[=!]|P<\w+>|P=\w+\)|#[^)]*\)|[aiLmsux-]+[:)])"
)


def _class_end(source: str, start: int) -> int:
    """Index just past the bracket class opened at start."""
    index = start + 1
    if source.startswith("^", index):
        index += 1
    # A leading "]" is a literal member
    if source.startswith("]", index):
        index += 1
    while index < len(source):
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if char == "]":
            return index + 1
        index += 1
    return len(source)


def expand_letter(char: str) -> str:
    """Character class for one letter or space; other characters pass through."""
    if char == " ":
        return SEPARATOR_CLASS
    return CHARACTER_CLASSES.get(char.lower(), char)


def decode_regexp(source: str) -> str:
    """
    Decode one ROT13-stored pattern source into a look-alike pattern.

    The whole source is rotated back first. Then every literal letter or
    space becomes a character class. Escape sequences, existing bracket
    classes and group or flag prefixes are copied unchanged.

    Args:
        source: ROT13-rotated regular expression source

    Returns:
        str: Pattern source ready to compile with re.IGNORECASE
    """
    source = caesar(source)
    output: list[str] = []
    index = 0

    while index < len(source):
        char = source[index]

        if char == "\\":
            output.append(source[index : index + 2])
            index += 2
        elif char == "[":
            end = _class_end(source, index)
            output.append(source[index:end])
            index = end
        elif char == "(" and GROUP_PREFIX_PATTERN.match(source, index):
            prefix = GROUP_PREFIX_PATTERN.match(source, index)
            output.append(prefix.group())
            index = prefix.end()
        elif char == " " or char in ascii_letters:
            output.append(expand_letter(char))
            index += 1
        else:
            output.append(char)
            index += 1

    return "".join(output)


def decode_regexps(sources: Iterable[str]) -> str:
    """Decode several sources and join them as alternatives."""
    return "|".join(decode_regexp(source) for source in sources)
