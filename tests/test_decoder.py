import pytest

from conftest import STREAM_URL, pack, player_script
from streamsports import decoder
from streamsports.decoder import PackerDecoder, decode_uri_component, parse_packed
from streamsports.errors import DecodeFailure, NoMarker, NoParams, NotFound


def test_round_trip_recovers_script_and_url():
    script = player_script(STREAM_URL)
    html = pack(script)

    assert decoder.decode(html) == script
    assert decoder.extract_stream_url(html) == STREAM_URL


@pytest.mark.parametrize("charset,offset,base", [
    ("abcdefghij", 13, 7),
    ("hutneraAbBcC", 40, 5),
    ("qwertyuiopasdfghjklz", 3, 9),
])
def test_round_trip_other_parameters(charset, offset, base):
    html = pack(player_script(STREAM_URL), charset=charset, offset=offset, base=base)
    assert decoder.extract_stream_url(html) == STREAM_URL


def test_parse_packed_splits_payload_and_params():
    packed = parse_packed(pack("hi", charset="abcdefghij", offset=13, base=7))

    assert packed.params.charset == "abcdefghij"
    assert packed.params.offset == 13
    assert packed.params.base == 7
    assert packed.params.separator == "h"
    assert packed.payload.endswith("h")


def test_missing_marker():
    with pytest.raises(NoMarker):
        decoder.decode("<html><script>var a = 1;</script></html>")


def test_unterminated_payload():
    with pytest.raises(NoMarker):
        decoder.decode('eval(function(){}("abcdef')


def test_params_do_not_match():
    with pytest.raises(NoParams):
        decoder.decode('eval(function(){}("abc",x,"y"))')


def test_base_outside_charset():
    with pytest.raises(NoParams):
        decoder.decode('eval(function(){}("abc",3,"abc",1,3,1))')


def test_decode_failures_share_a_base_class():
    with pytest.raises(DecodeFailure) as exc:
        decoder.decode("nothing packed here")
    assert exc.value.reason


def test_no_manifest_in_script():
    script = decoder.decode(pack('var x = "https://example.com/video.mp4";'))
    with pytest.raises(NotFound):
        decoder.find_stream_url(script)


def test_first_manifest_wins():
    script = (
        "var a = 'https://one.example/index.m3u8?token=1.2.3';\n"
        'var b = "https://two.example/index.m3u8?token=4.5.6";'
    )
    assert decoder.find_stream_url(script) == "https://one.example/index.m3u8?token=1.2.3"


def test_percent_encoded_script_is_decoded():
    encoded = player_script(STREAM_URL).replace('"', "%22").replace(" ", "%20")
    assert decoder.extract_stream_url(pack(encoded)) == STREAM_URL


@pytest.mark.parametrize("text", ["100%", "%zz", "abc%A", "%FF%FE"])
def test_bad_escapes_keep_raw_text(text):
    assert decode_uri_component(text) == text


def test_valid_escapes_decode():
    assert decode_uri_component("a%20b%C3%A9") == "a bé"


def test_fragmented_url():
    script = """
    const a = 'aHR0cHM6Ly9jZG4uZXhhbXBsZS9saXZlLw==';
    const b = 'aW5kZXgubTN1OD90b2tlbj1hYmMuMTk5OTk5OTk5OS54Lnkueg==';
    function xkQpZ(str) { return atob(str) }
    const src = xkQpZ(a) + xkQpZ(b);
    """
    assert decoder.find_stream_url(script) == (
        "https://cdn.example/live/index.m3u8?token=abc.1999999999.x.y.z"
    )


def test_fragmented_url_with_unknown_fragments_is_not_found():
    script = """
    function xkQpZ(str) { return atob(str) }
    const src = xkQpZ(a) + xkQpZ(b);
    """
    with pytest.raises(NotFound):
        decoder.find_stream_url(script)


def test_digit_convention_can_be_replaced():
    class LeastSignificantFirst(PackerDecoder):
        def digits_to_int(self, digits, base):
            return sum(int(d) * base ** i for i, d in enumerate(digits) if "0" <= d <= "9")

    html = pack(player_script(STREAM_URL), reverse_digits=True)
    custom = LeastSignificantFirst()

    assert custom.find_stream_url(custom.decode(html)) == STREAM_URL
    with pytest.raises(NotFound):
        decoder.extract_stream_url(html)
