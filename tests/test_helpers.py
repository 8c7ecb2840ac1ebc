from services.identifiers import generate_borrowing_code
from services.pagination import Page, parse_sort


def test_first_borrowing_code():
    assert generate_borrowing_code(None) == 'BR000001'
    assert generate_borrowing_code('') == 'BR000001'
    assert generate_borrowing_code('legacy') == 'BR000001'


def test_next_borrowing_code_increments_numeric_suffix():
    assert generate_borrowing_code('BR000041') == 'BR000042'
    assert generate_borrowing_code('BR999999') == 'BR1000000'


def test_parse_sort():
    assert parse_sort(None) == (None, False)
    assert parse_sort('due_date') == ('due_date', False)
    assert parse_sort('-due_date') == ('due_date', True)


def test_page_count_rounds_up():
    assert Page(items=[], total=0, page=1, limit=10).pages == 0
    assert Page(items=[], total=10, page=1, limit=10).pages == 1
    assert Page(items=[], total=11, page=2, limit=10).pages == 2
