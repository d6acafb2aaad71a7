"""End-to-end transfers against a live server"""

import io
import os

import pytest
from aiohttp import web

from cmdfiles.client import TransferClient
from cmdfiles.config import ClientConfig, TransferSettings
from cmdfiles.errors import ConfigError, LocalFileError, RemoteError, StreamError
from cmdfiles.transfer.downloader import DownloadProgress, StreamDownloader

from conftest import free_port, stub_server

MiB = 1024 * 1024


class TestUpload:
    """Test whole-file and chunked uploads"""

    @pytest.mark.asyncio
    async def test_small_file_single_request(self, temp_dir, live_server, client_config):
        source = temp_dir / 'notes.txt'
        source.write_bytes(b'small file')
        results = []

        async with TransferClient(client_config) as client:
            sent = await client.upload(str(source), 'docs', results.append)

        assert sent == 1
        assert [r.index for r in results] == [0]
        assert results[0].text == 'SUCCESS'
        assert (live_server.root / 'docs' / 'notes.txt').read_bytes() == b'small file'

    @pytest.mark.asyncio
    async def test_chunked_upload(self, temp_dir, live_server, client_config):
        source = temp_dir / 'data.bin'
        data = os.urandom(2500)
        source.write_bytes(data)
        settings = TransferSettings(max_upload_size=1000, chunk_threshold=1000)
        results = []

        async with TransferClient(client_config, settings) as client:
            sent = await client.upload(str(source), 'bin', results.append)

        assert sent == 3
        assert [r.index for r in results] == [1, 2, 3]
        assert [r.size for r in results] == [1000, 1000, 500]
        assert (live_server.root / 'bin' / 'data.bin').read_bytes() == data

        # artifacts are removed once sent
        assert list(client_config.scratch.path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_file_at_threshold_is_chunked(self, temp_dir, live_server, client_config):
        source = temp_dir / 'edge.bin'
        source.write_bytes(b'z' * 1000)
        settings = TransferSettings(max_upload_size=1000, chunk_threshold=1000)
        results = []

        async with TransferClient(client_config, settings) as client:
            await client.upload(str(source), '', results.append)

        assert [r.index for r in results] == [1]

    @pytest.mark.asyncio
    async def test_twelve_mib_in_three_chunks(self, temp_dir, live_server, client_config):
        source = temp_dir / 'large.bin'
        data = os.urandom(12 * MiB)
        source.write_bytes(data)
        results = []

        async with TransferClient(client_config) as client:
            await client.upload(str(source), 'big', results.append)

        assert [r.index for r in results] == [1, 2, 3]
        assert [r.size for r in results] == [5 * MiB, 5 * MiB, 2 * MiB]
        assert (live_server.root / 'big' / 'large.bin').read_bytes() == data

    @pytest.mark.asyncio
    async def test_reupload_replaces_chunked_file(self, temp_dir, live_server, client_config):
        source = temp_dir / 'v.bin'
        settings = TransferSettings(max_upload_size=100, chunk_threshold=100)

        async with TransferClient(client_config, settings) as client:
            source.write_bytes(b'a' * 350)
            await client.upload(str(source))
            source.write_bytes(b'b' * 120)
            await client.upload(str(source))

        assert (live_server.root / 'v.bin').read_bytes() == b'b' * 120

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ['', 'missing.txt', 'folder', 'empty.txt'])
    async def test_rejected_before_any_request(self, temp_dir, live_server, client_config, name):
        (temp_dir / 'folder').mkdir()
        (temp_dir / 'empty.txt').write_bytes(b'')
        source = str(temp_dir / name) if name else ''

        async with TransferClient(client_config) as client:
            with pytest.raises(LocalFileError):
                await client.upload(source, 'x')

        assert live_server.app.state.receiver.chunks_received == 0

    @pytest.mark.asyncio
    async def test_server_rejection_aborts(self, temp_dir, live_server, client_config):
        source = temp_dir / 'f.txt'
        source.write_bytes(b'data')
        # a plain file where the destination directory should be
        (live_server.root / 'blocker').write_bytes(b'')

        async with TransferClient(client_config) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.upload(str(source), 'blocker')

        assert exc_info.value.status == 400
        assert exc_info.value.body == 'INVALID_DIR'

    @pytest.mark.asyncio
    async def test_chunked_upload_stops_at_failed_chunk(self, temp_dir, scratch):
        seen = []

        async def handler(request):
            form = await request.post()
            seen.append(form['multiindex'])
            if form['multiindex'] == '2':
                return web.Response(status=500, text='WRITE_FILE_APPEND_ERROR')
            return web.Response(text='SUCCESS')

        source = temp_dir / 'f.bin'
        source.write_bytes(os.urandom(1000))
        settings = TransferSettings(max_upload_size=100, chunk_threshold=100)

        async with stub_server(handler) as port:
            config = ClientConfig(host='127.0.0.1', port=str(port), scratch=scratch)
            async with TransferClient(config, settings) as client:
                with pytest.raises(RemoteError) as exc_info:
                    await client.upload(str(source), 'bin')

        assert seen == ['1', '2']
        assert exc_info.value.status == 500
        assert exc_info.value.body == 'WRITE_FILE_APPEND_ERROR'
        # neither the rejected chunk nor the ones split ahead of it remain
        assert list(scratch.path.iterdir()) == []


class TestDownload:
    """Test streamed downloads"""

    @pytest.mark.asyncio
    async def test_download_round_trip(self, temp_dir, live_server, client_config):
        data = os.urandom(2500)
        (live_server.root / 'remote').mkdir(parents=True)
        (live_server.root / 'remote' / 'blob.bin').write_bytes(data)
        settings = TransferSettings(max_upload_size=1000)
        totals = []

        async with TransferClient(client_config, settings) as client:
            result = await client.download(
                'remote/blob.bin', str(temp_dir / 'local'),
                lambda p: totals.append(p.bytes_downloaded),
            )

        local = temp_dir / 'local' / 'blob.bin'
        assert result.path == local
        assert local.read_bytes() == data
        assert result.bytes_downloaded == 2500
        assert totals == [500, 1000, 1500, 2000, 2500]

    @pytest.mark.asyncio
    async def test_replaces_existing_local_file(self, temp_dir, live_server, client_config):
        live_server.root.mkdir(parents=True, exist_ok=True)
        (live_server.root / 'doc.txt').write_bytes(b'fresh')
        (temp_dir / 'doc.txt').write_bytes(b'an older and much longer copy')

        async with TransferClient(client_config) as client:
            await client.download('doc.txt', str(temp_dir))

        assert (temp_dir / 'doc.txt').read_bytes() == b'fresh'

    @pytest.mark.asyncio
    async def test_zero_byte_file(self, temp_dir, live_server, client_config):
        live_server.root.mkdir(parents=True, exist_ok=True)
        (live_server.root / 'empty').write_bytes(b'')

        async with TransferClient(client_config) as client:
            result = await client.download('empty', str(temp_dir / 'out'))

        assert result.bytes_downloaded == 0
        assert (temp_dir / 'out' / 'empty').read_bytes() == b''

    @pytest.mark.asyncio
    async def test_missing_remote_file(self, temp_dir, live_server, client_config):
        async with TransferClient(client_config) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.download('no/such/file.txt', str(temp_dir / 'out'))

        assert exc_info.value.status == 404
        assert not (temp_dir / 'out' / 'file.txt').exists()

    @pytest.mark.asyncio
    async def test_connection_dropped_mid_body(self, temp_dir, scratch):
        async def handler(request):
            resp = web.StreamResponse()
            resp.content_length = 5000
            await resp.prepare(request)
            await resp.write(b'x' * 1000)
            request.transport.close()
            return resp

        async with stub_server(handler) as port:
            config = ClientConfig(host='127.0.0.1', port=str(port), scratch=scratch)
            async with TransferClient(config) as client:
                with pytest.raises(StreamError):
                    await client.download('cut.bin', str(temp_dir / 'out'))

    @pytest.mark.asyncio
    async def test_body_shorter_than_declared(self, temp_dir):
        class Body:
            def __init__(self, data):
                self._stream = io.BytesIO(data)

            async def read(self, n):
                return self._stream.read(n)

        class Response:
            content = Body(b'x' * 1000)

        downloader = StreamDownloader(session=None, chunk_size=300)
        progress = DownloadProgress(url='http://h/files/short.bin',
                                    path=temp_dir / 'short.bin', total_size=5000)

        with pytest.raises(StreamError) as exc_info:
            await downloader._write_body(Response(), progress, None)

        assert 'truncated' in str(exc_info.value)
        # the partial file is left in place
        assert (temp_dir / 'short.bin').read_bytes() == b'x' * 1000

    @pytest.mark.asyncio
    async def test_directory_in_the_way(self, temp_dir, live_server, client_config):
        live_server.root.mkdir(parents=True, exist_ok=True)
        (live_server.root / 'doc.txt').write_bytes(b'data')
        (temp_dir / 'out' / 'doc.txt').mkdir(parents=True)

        async with TransferClient(client_config) as client:
            with pytest.raises(LocalFileError):
                await client.download('doc.txt', str(temp_dir / 'out'))

    @pytest.mark.asyncio
    async def test_upload_then_download(self, temp_dir, live_server, client_config):
        source = temp_dir / 'photo.jpg'
        data = os.urandom(5000)
        source.write_bytes(data)
        settings = TransferSettings(max_upload_size=1024, chunk_threshold=1024)

        async with TransferClient(client_config, settings) as client:
            await client.upload(str(source), 'album')
            await client.download('album/photo.jpg', str(temp_dir / 'back'))

        assert (temp_dir / 'back' / 'photo.jpg').read_bytes() == data


class TestDeleteAndList:
    """Test the pass-through operations"""

    @pytest.mark.asyncio
    async def test_delete(self, live_server, client_config):
        live_server.root.mkdir(parents=True, exist_ok=True)
        (live_server.root / 'trash.txt').write_bytes(b'x')

        async with TransferClient(client_config) as client:
            assert await client.delete('trash.txt') == 'SUCCESS'

        assert not (live_server.root / 'trash.txt').exists()

    @pytest.mark.asyncio
    async def test_delete_requires_path(self, client_config):
        async with TransferClient(client_config) as client:
            with pytest.raises(LocalFileError):
                await client.delete('')

    @pytest.mark.asyncio
    async def test_list(self, live_server, client_config):
        (live_server.root / 'photos').mkdir(parents=True)
        (live_server.root / 'photos' / 'cat.jpg').write_bytes(b'meow')

        async with TransferClient(client_config) as client:
            text = await client.list('photos')

        assert 'cat.jpg' in text


class TestClientErrors:
    """Test configuration and transport failures"""

    def test_missing_endpoint(self, scratch):
        with pytest.raises(ConfigError):
            TransferClient(ClientConfig(scratch=scratch))

    @pytest.mark.asyncio
    async def test_connection_refused(self, temp_dir, scratch):
        config = ClientConfig(host='127.0.0.1', port=str(free_port()), scratch=scratch)
        source = temp_dir / 'f.txt'
        source.write_bytes(b'data')

        async with TransferClient(config) as client:
            with pytest.raises(RemoteError):
                await client.upload(str(source))
