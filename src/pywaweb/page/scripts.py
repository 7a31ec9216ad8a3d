"""
JavaScript evaluated inside the WhatsApp Web page.

Every script is a Playwright `evaluate` body taking a single argument object.
"""

from __future__ import annotations

# Hooks the page's message collection and sync flag, forwarding everything
# through one exposed binding so notifications reach Python in page order.
#
# Payloads posted to the binding:
#   {kind: "auth",   info: {wid, pushname, platform}}
#   {kind: "sync",   value: true | false | null}
#   {kind: "add",    record: {...}}
#   {kind: "remove", record: {...}}
#   {kind: "type",   record: {...}}
#
# Resolves to {ok: true, synced, me} with `synced` read *before* the change
# listener was attached, or {ok: false, error} when no account logged in
# within `timeoutMs`.
INSTALL_SCRIPT = """
async ({ binding, pendingTypes, timeoutMs }) => {
  const post = (payload) => window[binding](payload);
  const flag = (v) => (v === true ? true : v === false ? false : null);
  const wid = (w) => (w && w._serialized) || (typeof w === 'string' ? w : null);
  const sleep = () => new Promise((r) => setTimeout(r, 250));

  const lookup = () => {
    if (typeof window.require !== 'function') return null;
    try {
      const collections = window.require('WAWebCollections');
      const socketModel = window.require('WAWebSocketModel');
      if (collections && collections.Msg && socketModel && socketModel.Socket) {
        return { Msg: collections.Msg, AppState: socketModel.Socket };
      }
    } catch (_) {}
    return null;
  };

  const meInfo = () => {
    try {
      const meUser = window.require('WAWebUserPrefsMeUser').getMaybeMeUser();
      if (!meUser) return null;
      const conn = window.require('WAWebConnModel').Conn;
      return {
        wid: wid(meUser),
        pushname: (conn && conn.pushname) || null,
        platform: (conn && conn.platform) || null,
      };
    } catch (_) {
      return null;
    }
  };

  const started = Date.now();
  const expired = () => Date.now() - started > timeoutMs;

  let stores = lookup();
  while (!stores) {
    if (expired()) throw new Error('WhatsApp Web internals not available');
    await sleep();
    stores = lookup();
  }
  const { Msg, AppState } = stores;

  let me = meInfo();
  while (!me) {
    if (expired()) return { ok: false, error: 'no account logged in' };
    await sleep();
    me = meInfo();
  }

  const serialize = (msg) => ({
    id: msg.id ? wid(msg.id) : null,
    isNewMsg: msg.isNewMsg === undefined ? null : msg.isNewMsg,
    type: msg.type,
    body: typeof msg.body === 'string' ? msg.body : null,
    from: wid(msg.from),
    to: wid(msg.to),
    author: wid(msg.author),
    chatId: msg.id ? wid(msg.id.remote) : null,
    fromMe: !!(msg.id && msg.id.fromMe),
    t: msg.t,
    hasMedia: !!(msg.mediaKey && msg.directPath),
    quotedMsgId: msg.quotedStanzaID || null,
  });

  const watchType = (msg) => {
    msg.once('change:type', (changed) => {
      post({ kind: 'type', record: serialize(changed) });
      if (pendingTypes.includes(changed.type)) watchType(changed);
    });
  };

  // A reload drops window state, so this only guards double installs
  // within one page lifetime.
  if (window.__pywawebInstalled) {
    return { ok: true, synced: flag(AppState.hasSynced), me };
  }
  window.__pywawebInstalled = true;

  // Posted ahead of every other payload.
  post({ kind: 'auth', info: me });

  const synced = flag(AppState.hasSynced);
  AppState.on('change:hasSynced', (_model, value) => post({ kind: 'sync', value: flag(value) }));

  Msg.on('add', (msg) => {
    if (pendingTypes.includes(msg.type) && msg.isNewMsg !== false) watchType(msg);
    post({ kind: 'add', record: serialize(msg) });
  });
  Msg.on('remove', (msg) => post({ kind: 'remove', record: serialize(msg) }));

  return { ok: true, synced, me };
}
"""

# Resolves to {ok: true, id} or {ok: false, error}.
SEND_TEXT_SCRIPT = """
async ({ chatId, text, quotedId }) => {
  try {
    const { Chat, Msg } = window.require('WAWebCollections');
    const { createWid } = window.require('WAWebWidFactory');
    const { sendTextMsgToChat } = window.require('WAWebSendTextMsgChatAction');

    const target = createWid(chatId);
    const chat = Chat.get(target) || (await Chat.find(target));
    if (!chat) return { ok: false, error: 'chat not found' };

    const options = {};
    if (quotedId) {
      const quoted = Msg.get(quotedId);
      if (!quoted) return { ok: false, error: 'quoted message not found' };
      options.quotedMsg = quoted;
    }
    await sendTextMsgToChat(chat, text, options);
    const last = chat.msgs.last();
    return { ok: true, id: last && last.id ? last.id._serialized : null };
  } catch (e) {
    return { ok: false, error: String((e && e.message) || e) };
  }
}
"""

# Resolves to {ok: true, chat: {...} | null} or {ok: false, error}.
GET_CHAT_SCRIPT = """
async ({ chatId }) => {
  try {
    const { Chat } = window.require('WAWebCollections');
    const { createWid } = window.require('WAWebWidFactory');
    const target = createWid(chatId);
    let chat = Chat.get(target);
    if (!chat) {
      try {
        chat = await Chat.find(target);
      } catch (_) {
        chat = null;
      }
    }
    if (!chat) return { ok: true, chat: null };
    return {
      ok: true,
      chat: {
        id: chat.id._serialized,
        name: chat.name || chat.formattedTitle || null,
        isGroup: !!chat.isGroup,
        unreadCount: chat.unreadCount || 0,
        archived: !!chat.archive,
        t: chat.t || null,
      },
    };
  } catch (e) {
    return { ok: false, error: String((e && e.message) || e) };
  }
}
"""

# Resolves to {ok: true, contact: {...} | null} or {ok: false, error}.
GET_CONTACT_SCRIPT = """
async ({ contactId }) => {
  try {
    const { Contact } = window.require('WAWebCollections');
    const { createWid } = window.require('WAWebWidFactory');
    const target = createWid(contactId);
    let contact = Contact.get(target);
    if (!contact) {
      try {
        contact = await Contact.find(target);
      } catch (_) {
        contact = null;
      }
    }
    if (!contact) return { ok: true, contact: null };
    return {
      ok: true,
      contact: {
        id: contact.id._serialized,
        name: contact.name || null,
        pushname: contact.pushname || null,
        shortName: contact.shortName || null,
        isMe: !!contact.isMe,
        isBusiness: !!contact.isBusiness,
      },
    };
  } catch (e) {
    return { ok: false, error: String((e && e.message) || e) };
  }
}
"""
